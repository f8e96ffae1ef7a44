"""
Feature modules live under this package.

Each module owns its models and service functions and reuses the platform
primitives (credentials, tokens, audit, DB session) from app.chirp.
"""
