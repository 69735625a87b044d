"""News Reader version registry.

Single source of truth for runtime versioning.
"""

CURRENT_VERSION = "1.2.0"
CURRENT_MILESTONE = "gateway+extraction-hardening"
CURRENT_DATE = "2026-10-12"

VERSION_HISTORY = [
    {
        "version": "1.0.0",
        "date": "2026-08-03",
        "notes": "Question flow, article paging, sentence reader",
    },
    {
        "version": "1.1.0",
        "date": "2026-09-14",
        "notes": "Continuation prompt, skip handling, listen watchdogs",
    },
    {
        "version": "1.2.0",
        "date": CURRENT_DATE,
        "notes": "Service gateway; JSON-LD and meta-description extraction",
    },
]


def get_version():
    return {
        "version": CURRENT_VERSION,
        "milestone": CURRENT_MILESTONE,
        "date": CURRENT_DATE,
        "history": VERSION_HISTORY,
    }
