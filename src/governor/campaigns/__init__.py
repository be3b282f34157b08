"""Campaign configuration and run records."""
