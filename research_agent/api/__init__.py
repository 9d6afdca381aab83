# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - tools.py: GET /tools and the three tool endpoints (analyze_urls,
#     web_search, research_or_scrape)
# =============================================================================
