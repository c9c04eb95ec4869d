"""Infrastructure layer for resources app.

This package contains integrations with external systems:
- Namespace storage backend (S3/MinIO)
- Virtual path to storage key translation
- Zip archive streaming

Keep infrastructure concerns separate from business logic.
"""
