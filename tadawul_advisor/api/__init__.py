# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - chat.py: question answering endpoint (always a ChatResponse body)
#   - documents.py: document search and indexing endpoints
#   - deps.py: service lookup from app.state for route dependencies
# =============================================================================
