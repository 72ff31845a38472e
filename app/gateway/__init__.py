"""Chat Gateway Layer.

Provides the async infrastructure behind the in-app assistant:
  - Provider Adapters (request/response shapes per upstream LLM)
  - Fallback Orchestrator (priority-ordered, one pass, sequential)
  - Sliding-Window Rate Limiter (per client identity)
  - Message Normalizer (canonical chat sequence helpers)
"""
