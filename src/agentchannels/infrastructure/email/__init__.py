"""Gmail-backed email channel."""
