# =============================================================================
# Services Package — External Collaborators
# =============================================================================
#   - gemini.py: Gemini generateContent client (Google Search + URL Context
#     tools), response decoding, lazy singleton factory
#   - urls.py: Source URL validation, normalisation and deduplication
# =============================================================================
