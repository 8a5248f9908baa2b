# Middleware package init
"""
CaseVault Backend - Middleware Package
========================================

Middleware chain (outermost first):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Request ID runs first so the access log line and every service log line
    written during the request carry the same id.
"""
