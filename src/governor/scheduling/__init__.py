"""Auto-schedule trigger."""
