"""Error classification and retry policy for agent adapters."""
