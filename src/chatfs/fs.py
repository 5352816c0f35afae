# chatfs: Small shared helpers (timestamps, ids, POSIX path normalization, text sizing) used by the
# sandbox, gateway, stores and handlers.

import time
import uuid


def now_ts() -> float:
    """Return the current UNIX timestamp in seconds (float)."""
    return time.time()


def short_id(prefix: str) -> str:
    """Return a short unique identifier with the given prefix (e.g., op-1a2b3c4d)."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def normalize_path(p: str) -> str:
    """Normalize separators to POSIX style (forward slashes) without touching the filesystem."""
    return p.replace("\\", "/")


def utf8_size(s: str) -> int:
    """Byte length of s once encoded as UTF-8."""
    return len(s.encode("utf-8"))


def decode_text(data: bytes) -> str:
    """Decode file bytes as UTF-8; undecodable sequences are replaced rather than raising."""
    return data.decode("utf-8", errors="replace")


def format_kib(size: int) -> str:
    return f"{size / 1024:.2f}KB"


def strip_code_fence(text: str) -> str:
    """
    Remove a single code fence wrapping the whole text.

    Models frequently answer "raw file content" requests with ```lang ... ``` around the
    body; only a fence that opens on the first line and closes on the last is removed.
    """
    stripped = text.strip()
    if not stripped.startswith("```") or not stripped.endswith("```"):
        return text
    lines = stripped.split("\n")
    if len(lines) < 2 or lines[-1].strip() != "```":
        return text
    body = "\n".join(lines[1:-1])
    return body + "\n" if body else ""
