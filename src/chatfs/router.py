# chatfs: Classify raw chat text into a Command. A recognized prefix commits the message to
# that command: malformed arguments produce UsageErrorCommand, never a general query.

import re
from typing import Optional, Tuple

from .models import (
    Command,
    ContextAddCommand,
    ContextClearCommand,
    ContextListCommand,
    CreateCommand,
    DeleteCommand,
    GeneralQuery,
    HelpCommand,
    ListCommand,
    ReadCommand,
    UsageErrorCommand,
    WriteCommand,
)

USAGE = {
    "/read": "Usage: /read <path>",
    "/list": "Usage: /list [<path>]",
    "/create": "Usage: /create <path> [description of content]",
    "/write": "Usage: /write <path> <description of changes>",
    "/delete": "Usage: /delete <path>",
    "/context": "Usage: /context <path> | add <path> | list | clear",
    "/help": "Usage: /help",
}

# /prefix followed by whitespace or end of text; "/readme" is not "/read".
_PREFIX_RE = re.compile(r"^(/[A-Za-z]+)(?:\s+(.*))?$", re.DOTALL)
_QUOTED_RE = re.compile(r'^"([^"]*)"(?:\s+(.*))?$', re.DOTALL)
_BARE_RE = re.compile(r"^(\S+)(?:\s+(.*))?$", re.DOTALL)


def split_path_argument(args: str) -> Tuple[Optional[str], str]:
    """
    Split '<path> [rest]' into (path, rest). A double-quoted path may contain spaces.
    Returns (None, "") when no path is present.
    """
    args = args.strip()
    if not args:
        return None, ""
    m = _QUOTED_RE.match(args)
    if m:
        path = m.group(1).strip()
        return (path or None), (m.group(2) or "").strip()
    m = _BARE_RE.match(args)
    if not m:
        return None, ""
    return m.group(1), (m.group(2) or "").strip()


def whole_path_argument(args: str) -> Optional[str]:
    """The entire argument as one path (spaces allowed); surrounding double quotes are removed."""
    args = args.strip()
    m = _QUOTED_RE.match(args)
    if m:
        if m.group(2):
            return None
        return m.group(1).strip() or None
    return args or None


class CommandRouter:
    """Stateless: route() depends only on its argument."""

    def route(self, message_text: str) -> Command:
        text = (message_text or "").strip()
        m = _PREFIX_RE.match(text)
        if not m:
            return GeneralQuery(text=message_text)
        prefix = m.group(1).lower()
        args = (m.group(2) or "").strip()
        handler = getattr(self, "_route_" + prefix[1:], None)
        if handler is None:
            return GeneralQuery(text=message_text)
        return handler(args)

    def _usage(self, prefix: str) -> UsageErrorCommand:
        return UsageErrorCommand(prefix=prefix, usage=USAGE[prefix])

    def _route_read(self, args: str) -> Command:
        path = whole_path_argument(args)
        if not path:
            return self._usage("/read")
        return ReadCommand(path=path)

    def _route_list(self, args: str) -> Command:
        if not args:
            return ListCommand()
        path = whole_path_argument(args)
        if not path:
            return self._usage("/list")
        return ListCommand(path=path)

    def _route_create(self, args: str) -> Command:
        path, rest = split_path_argument(args)
        if not path:
            return self._usage("/create")
        return CreateCommand(path=path, description=rest or None)

    def _route_write(self, args: str) -> Command:
        path, rest = split_path_argument(args)
        if not path or not rest:
            return self._usage("/write")
        return WriteCommand(path=path, description=rest)

    def _route_delete(self, args: str) -> Command:
        path = whole_path_argument(args)
        if not path:
            return self._usage("/delete")
        return DeleteCommand(path=path)

    def _route_context(self, args: str) -> Command:
        keyword = args.lower()
        if keyword == "list":
            return ContextListCommand()
        if keyword == "clear":
            return ContextClearCommand()
        head, rest = split_path_argument(args)
        if head is not None and head.lower() == "add" and not args.startswith('"'):
            # "/context add" with nothing after it is a malformed add, not a file named "add".
            path = whole_path_argument(rest)
        else:
            path = whole_path_argument(args)
        if not path:
            return self._usage("/context")
        return ContextAddCommand(path=path)

    def _route_help(self, args: str) -> Command:
        if args:
            return self._usage("/help")
        return HelpCommand()
