"""
API Layer for the Face ID Authentication Service

This package provides the FastAPI-based API layer that exposes:
- REST endpoints for Face ID registration and login
- Session inspection, refresh and logout
- Profile management and health checks

The descriptor is computed by the client; the API only stores, matches
and signs.
"""
