"""Structured logging and learning metrics."""
