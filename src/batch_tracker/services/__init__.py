"""
Service layer for batch-tracker.

Each service module exposes plain functions that take an optional
``session`` argument. Without one, the function runs in its own
``session_scope()`` transaction.
"""
