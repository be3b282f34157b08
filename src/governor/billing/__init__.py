"""Prepaid balance and spend ledger (read side)."""
