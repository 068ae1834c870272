"""Curated memory — typed, scoped facts in line-oriented record files.

Layout:
    <memory_dir>/
    ├── 2026-02-20.record          # One file per UTC day, one record per line
    ├── 2026-02-21.record
    └── deletions.record           # Audit trail (append-only, never scanned)
"""
