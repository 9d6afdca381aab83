# =============================================================================
# Agents Package — Research Stages and Orchestration
# =============================================================================
#   - search.py: Web search stage (Google Search grounding → cited URLs)
#   - retrieval.py: URL Context stage (read given URLs → synthesised text)
#   - coverage.py: Coverage evaluator (is the summary enough? what next?)
#   - orchestrator.py: LangGraph research loop
#       search → retrieve → evaluate → (search | END), max 5 iterations
# =============================================================================
