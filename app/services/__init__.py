# app/services/__init__.py
"""
Business logic services.

Ingestion (upstream fetch, normalize, commit), the slot scheduler, the
article store, and the cache-only read service.
"""
