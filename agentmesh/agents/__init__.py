# =============================================================================
# Agents Package — Multi-Agent Orchestration Core
# =============================================================================
#   - types.py: Agent, MultiAgent, AgentResponse, join-key dataclasses
#   - context.py: per-query SharedContext + ContextManager (history)
#   - rag.py: per-agent retrieval-augmented answering
#   - strategies.py: Direct / Broadcast / Chained dispatch + registry
#   - selector.py: rule-based strategy choice for "auto" queries
#   - conflict.py: highest-confidence-wins numeric conflict resolution
#   - integrator.py: relevance filter + synthesis (concatenate / refine)
#   - orchestrator.py: the query pipeline and its failure boundary
#   - join_keys.py: statistical join-key detection between two agents
# =============================================================================
