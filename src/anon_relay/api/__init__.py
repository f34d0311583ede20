"""Liveness probe HTTP API."""
