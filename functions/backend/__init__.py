"""
Backend package for the Greenskill offer generator API.

This package provides a FastAPI application with document database, object
storage and draft store abstractions, so the service can run against
Firestore or SQL in production and in-memory backends in development.
"""
