"""
Infrastructure layer - external service integrations.

- storage: canonical object storage (R2 or local filesystem) and the
  selector that decides between them

These wrappers translate between external formats and our domain models.
"""
