"""Pydantic schemas for control and progress messages."""
