"""Service wiring for the API and CLI."""
