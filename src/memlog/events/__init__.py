"""Raw event trail — host events as JSONL, partitioned by session.

Layout:
    <logger_dir>/sessions/
    ├── 2026-02-21-fix-auth-bug/
    │   ├── main.jsonl                 # Root session events
    │   └── explore-ses_child.jsonl    # Sub-agent session events
    └── ses_unknown/                   # Session whose lookup failed (raw id)
        └── main.jsonl
"""
