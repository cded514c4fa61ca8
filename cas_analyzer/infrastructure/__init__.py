"""Adapters for the object store, message broker and status cache."""
