"""
Pydantic request/response models:
    - upload: upload-file-request input and typed result (camelCase on the wire)
    - page:   library pages, error envelope, health report
"""
