"""Rating service: stores customer ratings and publishes rating events."""
