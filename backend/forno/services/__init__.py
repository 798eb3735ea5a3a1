"""Transaction engine services."""
