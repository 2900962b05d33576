# =============================================================================
# Agents Package — LangGraph Chat Pipeline
# =============================================================================
#   - orchestrator.py: LangGraph graph — analyze the question, gather quotes,
#     fundamentals and documents concurrently, fuse, generate, assemble
#   - advisor.py: system prompt construction and the LLM call, with a
#     data-only answer when the provider is unavailable
#
# Pipeline: analyze → gather → fuse → generate → assemble
# =============================================================================
