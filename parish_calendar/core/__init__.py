"""Shared infrastructure: local date helpers, record stores and HTTP clients."""
