# chatfs: Pure path confinement. Every filesystem location derived from user input goes through
# resolve(); nothing here performs I/O or raises.

import posixpath
import re
from typing import Optional, Union

from .fs import normalize_path
from .models import ResolvedPath, SandboxError, SandboxErrorKind

_DRIVE_RE = re.compile(r"^[A-Za-z]:(/|$)")


def _has_control_chars(s: str) -> bool:
    return any(ord(c) < 32 for c in s)


def canonical_root(root: Optional[str]) -> Optional[str]:
    """Return the normalized absolute root string, or None when no usable root is given."""
    if root is None:
        return None
    r = normalize_path(root.strip())
    if not r:
        return None
    drive = ""
    if _DRIVE_RE.match(r):
        drive, r = r[:2], r[2:] or "/"
    if not r.startswith("/"):
        # A relative root cannot bound anything.
        return None
    return drive + posixpath.normpath(r).replace("//", "/")


def _is_within(path: str, root: str) -> bool:
    if path == root:
        return True
    prefix = root if root.endswith("/") else root + "/"
    return path.startswith(prefix)


def resolve(raw_path: str, root: Optional[str]) -> Union[ResolvedPath, SandboxError]:
    """
    Resolve a user-supplied path against the sandbox root.

    Rules:
      - Separators are normalized and surrounding whitespace trimmed.
      - Absolute input (leading '/' or a drive letter) must already lie inside root.
      - Relative input is joined to root.
      - '.' and '..' are collapsed; the result must be root itself or strictly below it.

    On a drive-qualified root a leading '/' carries no drive, so such input is stripped and
    treated as root-relative.

    Returns:
        ResolvedPath on success (display_relative '.' for root), SandboxError otherwise.
    """
    raw = raw_path if isinstance(raw_path, str) else ""
    croot = canonical_root(root)
    if croot is None:
        return SandboxError(kind=SandboxErrorKind.no_root_open, raw_path=raw, message="No workspace folder is open.")

    if _has_control_chars(raw):
        return SandboxError(kind=SandboxErrorKind.invalid_path, raw_path=raw, message=f"Invalid path format: {raw!r}")

    cleaned = normalize_path(raw.strip())

    if _DRIVE_RE.match(cleaned):
        candidate = cleaned[:2] + posixpath.normpath(cleaned[2:] or "/")
        if not _is_within(candidate, croot):
            return SandboxError(kind=SandboxErrorKind.outside_sandbox, raw_path=raw, message=f"Path is outside the workspace: {cleaned}")
    elif cleaned.startswith("/") and croot[1:2] != ":":
        # Absolute POSIX input is accepted only when it already lies inside root.
        candidate = posixpath.normpath(cleaned)
    else:
        relative = cleaned.lstrip("/") or "."
        candidate = posixpath.normpath(posixpath.join(croot, relative))

    # normpath keeps a leading '//' on POSIX; fold it so prefix checks stay exact.
    if candidate.startswith("//"):
        candidate = "/" + candidate.lstrip("/")

    if not _is_within(candidate, croot):
        return SandboxError(kind=SandboxErrorKind.outside_sandbox, raw_path=raw, message=f"Path is outside the workspace: {cleaned}")

    if candidate == croot:
        display = "."
    else:
        display = candidate[len(croot):].lstrip("/")
    return ResolvedPath(absolute=candidate, display_relative=display)


class PathSandbox:
    """Binds resolve() to one session's root."""

    def __init__(self, root: Optional[str]) -> None:
        self.root = canonical_root(root)

    def resolve(self, raw_path: str) -> Union[ResolvedPath, SandboxError]:
        return resolve(raw_path, self.root)

    def child(self, parent: ResolvedPath, name: str) -> Union[ResolvedPath, SandboxError]:
        """Resolve an entry name reported by a directory listing of parent."""
        base = "" if parent.display_relative == "." else parent.display_relative + "/"
        return self.resolve(base + name)
