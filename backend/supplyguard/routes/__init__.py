"""
SupplyGuard Backend — API Routes Package
==========================================

Route Inventory:
    - health.py:  GET    /health            (service health check)
    - cache.py:   GET    /api/cache/stats   (response cache statistics)
                  DELETE /api/cache         (flush the response cache)

The tenant CRUD routes of the platform live in other services; this gateway
only protects them. Routes stay thin: components come from app.state via the
accessors in supplyguard.dependencies.
"""
