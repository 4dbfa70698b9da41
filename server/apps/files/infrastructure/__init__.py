"""Infrastructure layer for files app.

This package contains integrations with external systems:
- Storage backends (local filesystem, S3-compatible buckets)
- Stream fan-out for single-pass uploads
- Image header and metadata parsing (Pillow)

Keep infrastructure concerns separate from business logic.
"""
