# =============================================================================
# Research Agent
# =============================================================================
# A multi-step web research service built on Gemini's Google Search and
# URL Context tools. Given a question it searches, reads the new sources,
# asks the model whether the accumulated answer covers the question, and
# repeats with a follow-up query until it does or the budget runs out.
#
# Package structure:
#   research_agent/
#   ├── api/          → FastAPI tool routes (analyze_urls, web_search,
#   │                    research_or_scrape)
#   ├── agents/       → Search, retrieval and coverage stages plus the
#   │                    LangGraph research loop
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Gemini client and URL helpers
# =============================================================================
