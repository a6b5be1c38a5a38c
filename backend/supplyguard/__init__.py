"""
SupplyGuard Backend — Application Package Initializer
======================================================

What: Marks the `supplyguard` directory as a Python package.
Why:  Enables module imports like `from supplyguard.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The package is the request-protection layer of the supply-chain API:

    ┌─────────────────────────────────────┐
    │     Middleware (HTTP concerns)      │  ← headers, 429s, X-Cache, access log
    ├─────────────────────────────────────┤
    │   Services (limiter, cache, audit)  │  ← plain Python, testable without HTTP
    ├─────────────────────────────────────┤
    │   Stores (expiring key-value map)   │  ← injected, swappable backing state
    ├─────────────────────────────────────┤
    │   Database (append-only audit log)  │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Stateful components are built once in create_app() and attached to
    app.state; nothing stateful lives at module level.
"""

__version__ = "1.0.0"
