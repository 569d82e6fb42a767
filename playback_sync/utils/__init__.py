"""Shared utilities: errors, results, retry and scheduling."""
