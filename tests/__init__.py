"""
TableDB Test Suite.

This package contains:
- unit/: Unit tests (pure builders, metadata, temporary SQLite files)
- integration/: Integration tests (record service on SQLite, concurrency)
"""
