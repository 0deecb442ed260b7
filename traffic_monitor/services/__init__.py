"""Log storage and export services."""
