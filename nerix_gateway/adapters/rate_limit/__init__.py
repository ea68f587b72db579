"""Rate limit counter stores.

The evaluator only talks to the abstract store, so a single-process
deployment can run on the in-memory store while multi-instance deployments
share counters through Redis.
"""
