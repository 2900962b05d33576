# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - gazetteer.py: Tadawul instruments and financial vocabularies
#   - analyzer.py: lexical query analysis (companies, sentiment, risk, type)
#   - document_store.py / document_loader.py: in-memory indexed corpus
#   - market_data.py: TTL-cached quotes and fundamentals (Twelve Data)
#   - market_quality.py: data validation and reliability scoring
#   - technical.py: simple technical signals from quotes and fundamentals
#   - context_window.py: per-conversation history with priority scoring
#   - fusion.py: merges all sources into one scored context
#   - assembler.py: validates model output against the response schema
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
# =============================================================================
