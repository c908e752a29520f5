"""Persistence, wiring and cross-cutting concerns (logging, errors, schemas)."""
