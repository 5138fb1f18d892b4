"""
Persistence package.

The adapter interface the ability layer consumes, plus an in-memory store
used by tests and small deployments.
"""
