"""Errors, schema, resilience and OAuth2 building blocks."""
