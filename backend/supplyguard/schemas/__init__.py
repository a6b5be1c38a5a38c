# Schemas package init
"""
SupplyGuard Backend — Schemas Package
=======================================

What:  Pydantic models for API contracts and in-process values.

Inventory:
    - rate_limit.py: RateLimitDecision, error envelope
    - audit.py:      Action enums, AuditEvent
    - system.py:     Health and cache administration responses
"""
