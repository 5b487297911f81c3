"""Terminal client for the support chat."""
