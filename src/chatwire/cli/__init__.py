"""Terminal client for chatwire."""
