"""API layer: read models and exports for operators and external consumers.

1. No SQLAlchemy imports - go through the store client and services
2. No filtering beyond what the query translator already provides
3. Return Pydantic models or serialized exports only
"""
