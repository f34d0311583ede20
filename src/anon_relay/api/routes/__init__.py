"""Route modules for the liveness probe."""
