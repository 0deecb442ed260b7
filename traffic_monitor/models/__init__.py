"""Request log data access helpers."""
