"""
Backend package for the memory capsule service.

This package provides a FastAPI application that fronts the hosted platform:
the enhancement form action, capsule and media endpoints, and sessions. Each
remote collaborator has an in-memory implementation for local runs and tests.
"""
