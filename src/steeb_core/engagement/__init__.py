"""Per-user engagement counters used to learn the best contact hour."""
