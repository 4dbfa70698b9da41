"""Business logic layer for files app.

This package contains all business logic for asset files:
- Streaming ingestion with metadata extraction
- File create, read, update and delete
- Public link resolution
- Generic record and payload handling used by the above

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""
