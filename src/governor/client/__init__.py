"""Dashboard-side polling client."""
