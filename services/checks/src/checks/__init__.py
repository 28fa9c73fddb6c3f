"""
AdLex Check Service.

Accepts check jobs, runs them through a bounded-concurrency priority
queue with retry, and exposes queue status, health and metrics
endpoints.
"""
