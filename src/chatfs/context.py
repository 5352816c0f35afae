# chatfs: Console I/O, lightweight logging and the outbound event sink for one session. The
# orchestrator only ever talks to the UI through Context.emit; subclasses can render events
# differently (tests record them).

import difflib
import sys
from typing import Any, Dict, List, Optional

from .models import (
    AssistantReply,
    ConfirmationPrompt,
    DirectoryListing,
    EntryKind,
    ErrorEvent,
    Event,
    FileContent,
    OperationApplied,
    OperationDiscarded,
    OperationKind,
    Preview,
    SystemNotice,
)


class Context:
    """
    Thin wrapper around console I/O and logging used by chatfs.

    This abstraction decouples stdout/stderr from business logic so sessions can be
    driven by the REPL, another UI boundary, or tests.
    """

    def __init__(self, root: Optional[str] = None, settings: Optional[Dict[str, Any]] = None) -> None:
        self.root = root
        self.settings = settings or {}

    def send_to_user(self, message: str) -> None:
        """Send a user-facing message to stdout."""
        print(message)

    def log(self, message: str) -> None:
        """Emit a lightweight log line to stdout, prefixed for readability."""
        if self._quiet():
            return
        print(f"[LOG] {message}")

    def error_message(self, message: str) -> None:
        """Print an error message to stderr."""
        print(f"Error: {message}", file=sys.stderr)

    def _quiet(self) -> bool:
        log_cfg = self.settings.get("logging") if isinstance(self.settings, dict) else None
        return isinstance(log_cfg, dict) and log_cfg.get("enabled") is False

    # ---------- Events ----------

    def emit(self, event: Event) -> None:
        """Render an outbound event on the console."""
        if isinstance(event, Preview):
            self._render_preview(event)
        elif isinstance(event, ConfirmationPrompt):
            self.send_to_user(f"Delete {event.target_path}? Type :confirm {event.id} to delete or :discard {event.id} to cancel.")
        elif isinstance(event, OperationApplied):
            self.send_to_user(f"Applied: {event.target_path}")
        elif isinstance(event, OperationDiscarded):
            self.send_to_user(f"Changes discarded for {event.target_path}. No action taken.")
        elif isinstance(event, SystemNotice):
            self.send_to_user(f"System: {event.text}")
        elif isinstance(event, ErrorEvent):
            self.error_message(f"[{event.kind.value}] {event.text}")
        elif isinstance(event, AssistantReply):
            self.send_to_user(event.text)
        elif isinstance(event, FileContent):
            self.send_to_user(f"Content of {event.path}:")
            self.send_to_user(event.content)
        elif isinstance(event, DirectoryListing):
            self.send_to_user(f"Directory listing for {event.path}:")
            for entry in event.entries:
                self.send_to_user(entry.name + ("/" if entry.kind == EntryKind.directory else ""))

    def _render_preview(self, event: Preview) -> None:
        if event.kind == OperationKind.write and event.original_content is not None:
            self.send_to_user(f"Review proposed changes for {event.target_path}:")
            for line in render_diff(event.target_path, event.original_content, event.proposed_content):
                self.send_to_user(line)
        else:
            self.send_to_user(f"Preview of content for {event.target_path}:")
            self.send_to_user(event.proposed_content if event.proposed_content else "(empty file)")
        self.send_to_user(f"Type :confirm {event.id} to apply or :discard {event.id} to cancel.")


def render_diff(path: str, original: str, proposed: str) -> List[str]:
    """Unified diff lines between original and proposed content (no trailing newlines)."""
    diff = difflib.unified_diff(
        original.splitlines(),
        proposed.splitlines(),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        lineterm="",
    )
    lines = list(diff)
    return lines if lines else ["(no changes)"]
