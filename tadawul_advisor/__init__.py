# =============================================================================
# Tadawul Market Advisor
# =============================================================================
# Question answering over Saudi-listed equities. Each user message is
# analyzed for companies and financial vocabulary, live market data and
# local research documents are gathered, fused into one scored context,
# and handed to an LLM whose output is validated before it is returned.
#
# Package structure:
#   tadawul_advisor/
#   ├── api/          → FastAPI route handlers (chat, documents)
#   ├── agents/       → LangGraph chat pipeline and answer generation
#   ├── models/       → Pydantic V2 market payloads, request/response schemas
#   └── services/     → Business logic (query analysis, document store,
#                        market data cache, context window, fusion,
#                        response assembly, LLM providers)
# =============================================================================
