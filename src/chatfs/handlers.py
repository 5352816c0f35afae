# chatfs: Per-command handlers. Read/list/context act immediately; create/write/delete only stage a
# PendingOperation and emit a preview, and confirm/discard perform or drop the staged mutation.
# Handlers raise OperationFailed internally; dispatch() turns that into an OpError outcome.

import threading
from typing import Callable, Dict, List, Optional, Union

from pydantic import Field

from .client import ModelBridge
from .context import Context
from .context_store import AddStatus, ContextStore, DirectoryEntryContent
from .fs import decode_text, format_kib, now_ts, short_id, strip_code_fence, utf8_size
from .gateway import FileGateway
from .models import (
    AssistantReply,
    Blocked,
    Command,
    ConfirmationPrompt,
    CustomBaseModel,
    DirEntry,
    DirectoryListing,
    EntryKind,
    EntryStat,
    ErrorKind,
    Event,
    FileContent,
    Generated,
    GatewayError,
    GatewayErrorKind,
    OperationApplied,
    OperationDiscarded,
    OperationFailed,
    OperationKind,
    OperationState,
    OpError,
    PendingOperation,
    Preview,
    ResolvedPath,
    SandboxError,
    ServiceFailure,
    SessionLimits,
    SystemNotice,
    Turn,
)
from .pending import PendingOperationTable
from .prompts import get_prompt
from .sandbox import PathSandbox
from .transcript import Transcript

_GATEWAY_ERROR_KIND = {
    GatewayErrorKind.not_found: ErrorKind.not_found,
    GatewayErrorKind.not_a_directory: ErrorKind.wrong_entry_kind,
    GatewayErrorKind.io_error: ErrorKind.io_error,
    GatewayErrorKind.outside_root: ErrorKind.sandbox_violation,
}


class Reply(CustomBaseModel):
    """Successful handler outcome: events for the UI and turns for the transcript."""
    events: List[Event] = Field(default_factory=list)
    turns: List[Turn] = Field(default_factory=list)

    def notice(self, text: str) -> "Reply":
        self.events.append(SystemNotice(text=text))
        self.turns.append(Turn.system(text))
        return self


Outcome = Union[Reply, OpError]


def _fail(kind: ErrorKind, text: str) -> OperationFailed:
    return OperationFailed(kind, text)


def _name_key(entry: DirEntry):
    return (entry.name.lower(), entry.name)


def sort_listing(entries: List[DirEntry]) -> List[DirEntry]:
    """Directories first, then everything else; each group alphabetical and stable."""
    dirs = [e for e in entries if e.kind == EntryKind.directory]
    rest = [e for e in entries if e.kind != EntryKind.directory]
    return sorted(dirs, key=_name_key) + sorted(rest, key=_name_key)


class CommandHandlers:
    def __init__(
        self,
        sandbox: PathSandbox,
        gateway: FileGateway,
        bridge: ModelBridge,
        transcript: Transcript,
        context_store: ContextStore,
        pending: PendingOperationTable,
        limits: SessionLimits,
        ctx: Context,
    ) -> None:
        self.sandbox = sandbox
        self.gateway = gateway
        self.bridge = bridge
        self.transcript = transcript
        self.context_store = context_store
        self.pending = pending
        self.limits = limits
        self.ctx = ctx
        # Guards the closed flag together with staging so a late model result cannot stage
        # into a session that has already ended.
        self.guard = threading.Lock()
        self.closed = False
        self._routes: Dict[str, Callable[..., Reply]] = {
            "read": self.handle_read,
            "list": self.handle_list,
            "create": self.handle_create,
            "write": self.handle_write,
            "delete": self.handle_delete,
            "context_add": self.handle_context_add,
            "context_list": self.handle_context_list,
            "context_clear": self.handle_context_clear,
            "help": self.handle_help,
            "query": self.handle_query,
            "usage_error": self.handle_usage_error,
        }

    # ---------- Entry points ----------

    def dispatch(self, command: Command) -> Outcome:
        """Run the handler for command and return its outcome; OperationFailed becomes OpError."""
        try:
            return self._routes[command.command](command)
        except OperationFailed as e:
            return e.error

    def confirm(self, op_id: str) -> Outcome:
        try:
            return self._confirm(op_id)
        except OperationFailed as e:
            return e.error

    def discard(self, op_id: str) -> Outcome:
        try:
            return self._discard(op_id)
        except OperationFailed as e:
            return e.error

    def shutdown(self) -> List[PendingOperation]:
        with self.guard:
            self.closed = True
            return self.pending.clear()

    # ---------- Shared helpers ----------

    def _resolve(self, raw_path: str) -> ResolvedPath:
        resolved = self.sandbox.resolve(raw_path)
        if isinstance(resolved, SandboxError):
            raise _fail(ErrorKind.sandbox_violation, resolved.message)
        return resolved

    def _stat(self, target: ResolvedPath) -> Optional[EntryStat]:
        """Stat target; None when it does not exist."""
        st = self.gateway.stat(target.absolute)
        if isinstance(st, GatewayError):
            if st.kind == GatewayErrorKind.not_found:
                return None
            raise _fail(_GATEWAY_ERROR_KIND[st.kind], f"Error accessing path {target.display_relative}: {st.message}")
        return st

    def _read_text(self, target: ResolvedPath) -> str:
        data = self.gateway.read(target.absolute)
        if isinstance(data, GatewayError):
            raise _fail(_GATEWAY_ERROR_KIND[data.kind], f"Error reading file {target.display_relative}: {data.message}")
        return decode_text(data)

    def _generate(self, instruction: str, exclude_path: Optional[str] = None) -> Optional[str]:
        """
        Ask the model with the live request replaced by instruction.

        Returns None when the session ended while the call was in flight; the caller must then
        drop the result.
        """
        docs = [d for d in self.context_store.list() if d.path != exclude_path]
        history = self.transcript.build_call_history(instruction, docs, max_turns=self.limits.history_turns)
        result = self.bridge.generate(history)
        if self.closed:
            self.ctx.log("Session ended before the model replied; result discarded.")
            return None
        if isinstance(result, Blocked):
            raise _fail(ErrorKind.service_blocked, f"Your request was blocked by the model service: {result.reason}. Please rephrase it.")
        if isinstance(result, ServiceFailure):
            raise _fail(ErrorKind.service_error, f"Error calling the model: {result.message}")
        if not isinstance(result, Generated):
            raise _fail(ErrorKind.service_error, "Model returned an unexpected result.")
        return result.text

    def _stage(self, op: PendingOperation) -> Optional[Reply]:
        """Stage op unless the session closed; returns a reply noting a superseded proposal."""
        reply = Reply()
        with self.guard:
            if self.closed:
                self.ctx.log(f"Session ended; proposal for {op.target_path} dropped.")
                return None
            replaced = self.pending.stage(op)
        if replaced is not None:
            reply.notice(f"Replaced earlier proposal {replaced.id} for {op.target_path}.")
        self.ctx.log(f"Staged {op.kind.value} {op.target_path} as {op.id}")
        return reply

    # ---------- Read / list ----------

    def handle_read(self, cmd) -> Reply:
        target = self._resolve(cmd.path)
        st = self._stat(target)
        if st is None:
            raise _fail(ErrorKind.not_found, f"File not found: {target.display_relative}")
        if st.kind != EntryKind.file:
            raise _fail(ErrorKind.wrong_entry_kind, f"Path is not a file: {target.display_relative}")
        if st.size > self.limits.max_read_bytes:
            raise _fail(
                ErrorKind.too_large,
                f"File is too large to read directly ({st.size / (1024 * 1024):.2f}MB). "
                f"Max size: {self.limits.max_read_bytes / (1024 * 1024):.2f}MB.",
            )
        content = self._read_text(target)
        size = utf8_size(content)
        if size > self.limits.max_context_bytes:
            # Too big to replay on every later call; the model only learns that it was shown.
            turn_text = (
                f"Content of {target.display_relative} ({size} bytes) was shown to the user. It is larger than "
                f"{format_kib(self.limits.max_context_bytes)} and is not kept in the conversation."
            )
        else:
            turn_text = f"Content of {target.display_relative}:\n```\n{content}\n```"
        return Reply(
            events=[FileContent(path=target.display_relative, content=content)],
            turns=[Turn.assistant(turn_text)],
        )

    def handle_list(self, cmd) -> Reply:
        target = self._resolve(cmd.path)
        st = self._stat(target)
        if st is None:
            raise _fail(ErrorKind.not_found, f"Directory not found: {target.display_relative}")
        if st.kind != EntryKind.directory:
            raise _fail(ErrorKind.wrong_entry_kind, f"Path is not a directory: {target.display_relative}")
        entries = self.gateway.list(target.absolute)
        if isinstance(entries, GatewayError):
            raise _fail(_GATEWAY_ERROR_KIND[entries.kind], f"Error listing directory {target.display_relative}: {entries.message}")
        ordered = sort_listing(entries)
        lines = [f"Directory listing for {target.display_relative}:"]
        lines.extend(e.name + ("/" if e.kind == EntryKind.directory else "") for e in ordered)
        return Reply(
            events=[DirectoryListing(path=target.display_relative, entries=ordered)],
            turns=[Turn.assistant("\n".join(lines))],
        )

    # ---------- Propose phase ----------

    def handle_create(self, cmd) -> Reply:
        target = self._resolve(cmd.path)
        if self._stat(target) is not None:
            raise _fail(ErrorKind.already_exists, f"File already exists: {target.display_relative}. Use /write to modify it.")

        if cmd.description:
            self.ctx.log(f"Generating content for {target.display_relative}...")
            instruction = get_prompt("create_file.txt", path=target.display_relative, description=cmd.description)
            generated = self._generate(instruction)
            if generated is None:
                return Reply()
            content = strip_code_fence(generated)
        else:
            # An explicit request for an empty file; no model call.
            content = ""

        op = PendingOperation(
            id=short_id("op"),
            kind=OperationKind.create,
            target=target,
            proposed_content=content,
            created_at=now_ts(),
        )
        reply = self._stage(op)
        if reply is None:
            return Reply()
        reply.events.append(
            Preview(id=op.id, kind=op.kind, target_path=op.target_path, proposed_content=content)
        )
        reply.turns.append(Turn.assistant(f"I've prepared content for {op.target_path}. Please review and confirm."))
        return reply

    def handle_write(self, cmd) -> Reply:
        target = self._resolve(cmd.path)
        st = self._stat(target)
        if st is None:
            raise _fail(ErrorKind.not_found, f"File not found: {target.display_relative}. Use /create to make a new file.")
        if st.kind != EntryKind.file:
            raise _fail(ErrorKind.wrong_entry_kind, f"Path is not a file: {target.display_relative}")
        if st.size > self.limits.max_write_bytes:
            raise _fail(
                ErrorKind.too_large,
                f"File is too large to modify with model assistance ({st.size / (1024 * 1024):.2f}MB). "
                f"Max size: {self.limits.max_write_bytes / (1024 * 1024):.2f}MB.",
            )
        original = self._read_text(target)

        self.ctx.log(f"Preparing modifications for {target.display_relative}...")
        instruction = get_prompt(
            "write_file.txt", path=target.display_relative, original=original, description=cmd.description
        )
        # The file body already travels in the instruction; do not inject it twice.
        generated = self._generate(instruction, exclude_path=target.display_relative)
        if generated is None:
            return Reply()
        content = strip_code_fence(generated)

        op = PendingOperation(
            id=short_id("op"),
            kind=OperationKind.write,
            target=target,
            proposed_content=content,
            original_content=original,
            created_at=now_ts(),
        )
        reply = self._stage(op)
        if reply is None:
            return Reply()
        reply.events.append(
            Preview(
                id=op.id,
                kind=op.kind,
                target_path=op.target_path,
                proposed_content=content,
                original_content=original,
            )
        )
        reply.turns.append(Turn.assistant(f"I've prepared modifications for {op.target_path}. Please review and confirm."))
        return reply

    def handle_delete(self, cmd) -> Reply:
        target = self._resolve(cmd.path)
        if target.display_relative == ".":
            raise _fail(ErrorKind.usage, "Refusing to delete the workspace root.")
        st = self._stat(target)
        if st is None:
            raise _fail(ErrorKind.not_found, f"File or folder not found: {target.display_relative}")
        op = PendingOperation(
            id=short_id("op"),
            kind=OperationKind.delete,
            target=target,
            target_stat=st,
            created_at=now_ts(),
        )
        reply = self._stage(op)
        if reply is None:
            return Reply()
        reply.events.append(ConfirmationPrompt(id=op.id, target_path=op.target_path))
        reply.turns.append(Turn.system(f"Deletion of {op.target_path} awaits confirmation."))
        return reply

    # ---------- Apply phase ----------

    def _stale(self, op_id: str) -> OperationFailed:
        state = self.pending.consumed_state(op_id)
        if state is None:
            return _fail(ErrorKind.stale_operation, f"No pending operation with id {op_id}.")
        return _fail(ErrorKind.stale_operation, f"Operation {op_id} is no longer pending ({state.value}).")

    def _confirm(self, op_id: str) -> Reply:
        op = self.pending.get(op_id)
        if op is None:
            raise self._stale(op_id)
        if op.kind == OperationKind.delete:
            return self._apply_delete(op)
        return self._apply_write(op)

    def _apply_write(self, op: PendingOperation) -> Reply:
        if op.kind == OperationKind.create and self._stat(op.target) is not None:
            self.pending.consume(op.id, OperationState.stale)
            raise _fail(
                ErrorKind.target_changed,
                f"{op.target_path} appeared since the proposal; nothing was written. Use /write to modify it.",
            )
        content = op.proposed_content or ""
        err = self.gateway.write(op.target.absolute, content.encode("utf-8"))
        if err is not None:
            self.pending.consume(op.id, OperationState.failed)
            verb = "creating" if op.kind == OperationKind.create else "writing"
            raise _fail(_GATEWAY_ERROR_KIND[err.kind], f"Error {verb} file {op.target_path}: {err.message}")
        self.pending.consume(op.id, OperationState.applied)
        self.ctx.log(f"Applied {op.id} ({op.kind.value} {op.target_path})")

        reply = Reply(events=[OperationApplied(target_path=op.target_path)])
        reply.notice(f"File {'created' if op.kind == OperationKind.create else 'updated'}: {op.target_path}")
        refreshed = self.context_store.refresh_if_pinned(op.target_path, content)
        if refreshed is not None and refreshed.status == AddStatus.updated:
            reply.notice(f"Updated context for: {op.target_path}")
        elif refreshed is not None:
            reply.notice(
                f"Removed {op.target_path} from context: now larger than {format_kib(self.context_store.max_document_bytes)}."
            )
        return reply

    def _apply_delete(self, op: PendingOperation) -> Reply:
        st = self._stat(op.target)
        if st is None or st != op.target_stat:
            self.pending.consume(op.id, OperationState.stale)
            raise _fail(
                ErrorKind.target_changed,
                f"{op.target_path} changed since deletion was proposed; nothing was deleted.",
            )
        err = self.gateway.delete(op.target.absolute)
        if err is not None:
            self.pending.consume(op.id, OperationState.failed)
            raise _fail(_GATEWAY_ERROR_KIND[err.kind], f"Error deleting {op.target_path}: {err.message}")
        self.pending.consume(op.id, OperationState.applied)
        self.ctx.log(f"Applied {op.id} (delete {op.target_path})")

        reply = Reply(events=[OperationApplied(target_path=op.target_path)])
        reply.notice(f"Successfully deleted: {op.target_path}")
        removed = self.context_store.remove_if_deleted(op.target_path)
        if removed:
            reply.notice(f"Removed {', '.join(removed)} from context as it was deleted.")
        return reply

    def _discard(self, op_id: str) -> Reply:
        op = self.pending.consume(op_id, OperationState.discarded)
        if op is None:
            raise self._stale(op_id)
        reply = Reply(events=[OperationDiscarded(target_path=op.target_path)])
        if op.kind == OperationKind.delete:
            reply.notice(f"Deletion of {op.target_path} cancelled.")
        else:
            reply.notice(f"Changes discarded for {op.target_path}. No action taken.")
        return reply

    # ---------- Context ----------

    def handle_context_add(self, cmd) -> Reply:
        target = self._resolve(cmd.path)
        st = self._stat(target)
        if st is None:
            raise _fail(ErrorKind.not_found, f"Path not found: {target.display_relative}")
        reply = Reply()
        if st.kind == EntryKind.file:
            limit = self.context_store.max_document_bytes
            if st.size > limit:
                raise _fail(
                    ErrorKind.too_large,
                    f"File {target.display_relative} is too large ({format_kib(st.size)}) to add to context. "
                    f"Max size is {format_kib(limit)}.",
                )
            outcome = self.context_store.add(target.display_relative, self._read_text(target))
            if outcome.status == AddStatus.skipped:
                raise _fail(ErrorKind.too_large, f"File {target.display_relative} is too large to add to context ({outcome.reason}).")
            if outcome.status == AddStatus.updated:
                reply.notice(f"Updated context for: {target.display_relative}")
            else:
                reply.notice(f"Added to context: {target.display_relative}")
        elif st.kind == EntryKind.directory:
            self._context_add_directory(target, reply)
        else:
            raise _fail(ErrorKind.wrong_entry_kind, f"Path {target.display_relative} is not a file or directory.")
        reply.notice(f"Context now contains {len(self.context_store)} file(s).")
        return reply

    def _context_add_directory(self, target: ResolvedPath, reply: Reply) -> None:
        listing = self.gateway.list(target.absolute)
        if isinstance(listing, GatewayError):
            raise _fail(_GATEWAY_ERROR_KIND[listing.kind], f"Error listing directory {target.display_relative}: {listing.message}")
        if not listing:
            reply.notice(f"Directory {target.display_relative} is empty. No files added to context.")
            return

        candidates: List[DirectoryEntryContent] = []
        for entry in sort_listing(listing):
            # Immediate children only.
            if entry.kind != EntryKind.file:
                continue
            child = self.sandbox.child(target, entry.name)
            if isinstance(child, SandboxError):
                candidates.append(DirectoryEntryContent(path=entry.name, size_bytes=0, error=child.message))
                continue
            candidates.append(self._read_child(child))

        if not candidates:
            reply.notice(f"No applicable files found in directory {target.display_relative} to add to context.")
            return

        report = self.context_store.add_directory(target.display_relative, candidates)
        limit_kib = format_kib(self.context_store.max_document_bytes)
        for outcome in report.outcomes:
            if outcome.status == AddStatus.skipped:
                reply.notice(f"Skipped {outcome.path} (in {target.display_relative}) due to size > {limit_kib}.")
            elif outcome.status == AddStatus.failed:
                reply.notice(f"Could not read file {outcome.path} in directory {target.display_relative}: {outcome.reason}")

        parts = []
        if report.added:
            parts.append(f"Added {report.added} new file(s) from {target.display_relative}.")
        if report.updated:
            parts.append(f"Updated {report.updated} existing file(s) in context from {target.display_relative}.")
        if report.skipped:
            parts.append(f"Skipped {report.skipped} file(s) from {target.display_relative} due to size.")
        if report.failed:
            parts.append(f"Failed to read {report.failed} file(s) from {target.display_relative}.")
        reply.notice(" ".join(parts))

    def _read_child(self, child: ResolvedPath) -> DirectoryEntryContent:
        st = self.gateway.stat(child.absolute)
        if isinstance(st, GatewayError):
            return DirectoryEntryContent(path=child.display_relative, size_bytes=0, error=st.message)
        if st.size > self.context_store.max_document_bytes:
            # Not read at all; add_directory reports it as skipped.
            return DirectoryEntryContent(path=child.display_relative, size_bytes=st.size)
        data = self.gateway.read(child.absolute)
        if isinstance(data, GatewayError):
            return DirectoryEntryContent(path=child.display_relative, size_bytes=st.size, error=data.message)
        return DirectoryEntryContent(path=child.display_relative, size_bytes=st.size, content=decode_text(data))

    def handle_context_list(self, cmd) -> Reply:
        docs = self.context_store.list()
        if not docs:
            return Reply().notice("Context is currently empty.")
        lines = ["Files currently in context:"]
        lines.extend(f"- {d.path} ({d.size_bytes} bytes)" for d in docs)
        lines.append(f"Total: {len(docs)} file(s).")
        return Reply().notice("\n".join(lines))

    def handle_context_clear(self, cmd) -> Reply:
        count = self.context_store.clear()
        return Reply().notice(f"Context has been cleared ({count} file(s) removed).")

    # ---------- Conversation ----------

    def handle_help(self, cmd) -> Reply:
        # UI-only; not recorded in the transcript.
        return Reply(events=[SystemNotice(text=get_prompt("help.txt"))])

    def handle_usage_error(self, cmd) -> Reply:
        raise _fail(ErrorKind.usage, cmd.usage)

    def handle_query(self, cmd) -> Reply:
        self.ctx.log("Calling model for conversation response...")
        text = self._generate(cmd.text)
        if text is None:
            return Reply()
        return Reply(events=[AssistantReply(text=text)], turns=[Turn.assistant(text)])
