"""Campaign status evaluation."""
