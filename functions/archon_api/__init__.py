"""
Backend package for the ArchonPro API.

This package provides a FastAPI application with tenant-scoped document
access and adapters for Firebase, Stripe, object storage and Gemini, so
the same routes run against live services or in-process stubs.
"""
