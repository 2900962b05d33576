# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - market.py: typed quote and fundamentals records parsed from upstream
#     provider payloads (missing numbers become None, never NaN)
#   - requests.py / responses.py: the public API contract
#
# Upstream payload models are kept apart from the API schemas so a provider
# change never leaks into what clients see.
# =============================================================================
