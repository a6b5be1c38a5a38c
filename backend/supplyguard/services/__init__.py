# Services package init
"""
SupplyGuard Backend — Services Layer
======================================

What:  The protection logic itself, free of HTTP concerns.
Why:   Middleware and routes stay thin; services are unit-tested with a fake
       clock and in-memory stores, no server required.

Service Inventory:
    - RateLimiter / RateLimiterRegistry: fixed-window counters per client key
    - ResponseCache:       TTL cache of GET JSON responses
    - AuditLogger:         best-effort audit recorder with typed wrappers
    - AuditSink:           persistence interface (DatabaseAuditSink)
    - BackupCodeManager:   2FA recovery code generation and verification
    - security_monitor:    security event log channel
    - monitors:            periodic cache sweep, memory and DB health checks
"""
