"""
Policy Module (Centralized Timeouts & Retries)

Constants only. No side effects. No imports from other newsreader modules.
Every value here is the default for the matching config.json key.
"""

# Conversation pacing
SETTLE_DELAY_SECONDS = 0.5          # pause between a prompt finishing and the mic opening
RESET_DELAY_SECONDS = 2.0           # pause before a session reset after a closing message
RELISTEN_DELAY_SECONDS = 1.0        # pause before re-listening after "no more articles"

# Recording windows
ANSWER_RECORD_SECONDS = 5.0         # max capture for question answers
SELECTION_RECORD_SECONDS = 5.0      # capture before explicit stop during article selection

# Transcription polling
TRANSCRIPT_POLL_INTERVAL_SECONDS = 2.0
TRANSCRIPT_MAX_POLL_ATTEMPTS = 90   # 3 minutes at 2 second intervals
HTTP_TIMEOUT_SECONDS = 10

# Watchdog windows (listen = capture + transcription)
LISTEN_WATCHDOG_SECONDS = 60.0
CONTINUATION_WATCHDOG_SECONDS = 10.0
TTS_TIMEOUT_SECONDS = 120.0
EXTRACT_WARN_SECONDS = 2.0        # slow-extraction warning only, never cancels

# Failure budget
MAX_FAILED_TURNS = 3

# Article paging
PAGE_SIZE = 5

# Reading voice
READING_RATE = 0.85
READING_PITCH = 1.0

# Fallback response when repeated turns fail (short, neutral)
FALLBACK_RESPONSE = "I'm having trouble right now. Let's try again later."
