"""Dashboard API layer."""
