"""Per-word compensation prediction."""
