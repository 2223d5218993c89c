"""Weekly timeline layout engine."""
