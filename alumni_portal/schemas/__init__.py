"""
Schemas module - Request/Response schemas for API endpoints.

All models live in schemas.py; import from there.
"""
