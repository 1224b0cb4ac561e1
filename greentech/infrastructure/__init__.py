"""Persistence: record stores and the repositories built on them."""
