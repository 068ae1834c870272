"""memory-log — curated memory records and a per-session event trail for coding agents."""
