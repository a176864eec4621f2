# Routes package init
"""
Omnivore API - Route Handlers
=============================

Route Inventory:
    - uploads.py: POST /api/upload-file-request  (signed upload URL + optional page)
                  PUT  /api/files/{path}         (local-storage signed upload target)
                  GET  /api/files/{path}         (serve a stored file)
    - pages.py:   GET  /api/pages                (library, cursor pagination)
                  GET  /api/pages/{id}           (single page)
    - health.py:  GET  /health                   (service health check)

Routes stay thin: parse the request, call a service, shape the response.
"""
