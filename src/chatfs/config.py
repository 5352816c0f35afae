# chatfs: Environment-driven defaults read once at import. Only the CLI consults these; sessions
# receive their limits explicitly through SessionLimits.

import os

from pydantic import ValidationError

from .models import SessionLimits

# Output token budget
MAX_COMPLETION_TOKENS = int(os.environ.get("CHATFS_MAX_COMPLETION_TOKENS", "16384"))

# Per-document bound for pinned context
MAX_CONTEXT_BYTES = int(os.environ.get("CHATFS_MAX_CONTEXT_BYTES", str(500 * 1024)))

# /read bound; kept above the context bound
MAX_READ_BYTES = int(os.environ.get("CHATFS_MAX_READ_BYTES", str(5 * 1024 * 1024)))

# Largest file /write will send to the model
MAX_WRITE_BYTES = int(os.environ.get("CHATFS_MAX_WRITE_BYTES", str(1024 * 1024)))

# Transcript turns replayed per model call
HISTORY_TURNS = int(os.environ.get("CHATFS_HISTORY_TURNS", "200"))


def limits_from_env() -> SessionLimits:
    """SessionLimits built from the environment-driven constants above; defaults if they do not validate."""
    try:
        return SessionLimits(
            max_context_bytes=MAX_CONTEXT_BYTES,
            max_read_bytes=MAX_READ_BYTES,
            max_write_bytes=MAX_WRITE_BYTES,
            history_turns=HISTORY_TURNS,
        )
    except ValidationError:
        return SessionLimits()
