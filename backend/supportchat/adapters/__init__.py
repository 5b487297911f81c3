"""Adapters for the backend API and the speech services."""
