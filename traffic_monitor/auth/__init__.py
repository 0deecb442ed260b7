"""Authentication and actor roles."""
