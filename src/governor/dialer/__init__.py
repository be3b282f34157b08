"""Dialer HTTP API."""
