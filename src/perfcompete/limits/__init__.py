"""Limits storage: documents, resources and previous run logs."""
