"""Per-session conversation context (sticky preferences and recent turns)."""
