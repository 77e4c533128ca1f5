# Middleware package init
"""
Catalog Backend — Middleware Package
======================================

Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    - Request ID first, so the access log line and any error body carry it
    - Logging measures the full duration of everything below it
"""
