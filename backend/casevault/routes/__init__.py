# Routes package init
"""
CaseVault Backend - API Routes Package
========================================

Route Inventory:
    - records.py:     POST /api/cases, POST /api/backlog
    - documents.py:   POST/GET /api/records/{parent_id}/documents
                      GET /api/documents/{id}/content, DELETE /api/documents/{id}
    - categories.py:  GET /api/case-types/{id}/categories
    - health.py:      GET /health

Routes stay thin: parse the request, call a service, shape the response.
Errors propagate to the handlers registered in main.py.
"""
