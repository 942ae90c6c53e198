"""Persistence layer: Postgres via SQLAlchemy Core, with in-memory twins."""
