"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Credentials (generation, validation, derivation)
    - Records (merge, traversal, wire format)
    - Admission (token bucket, per-client rate limiter)
    - Stats (lifetime and rolling 24h counters)
    - Storage engines (in-memory, SQLite, Redis)
    - DataService and the HTTP, tool-call and ASGI surfaces
"""
