# Services package init
"""
Omnivore API - Services Layer
=============================

Service Inventory:
    - UploadService:       upload-file-request flow, upload completion
    - PageService:         page find-or-create for uploads, library reads
    - StorageBackend:      abstract object store (storage_base)
        LocalStorageBackend  disk + HMAC-signed URLs served by this API
        GCSStorageBackend    Google Cloud Storage V4 signed URLs
    - AnalyticsService:    product events with retry and circuit breaker

Each module ends with a singleton (upload_service, page_service,
analytics_service); storage is chosen once by get_storage_backend().
"""
