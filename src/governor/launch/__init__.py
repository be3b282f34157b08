"""Launch, stop and override of campaign runs."""
