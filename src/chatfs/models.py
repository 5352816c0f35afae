# chatfs: Centralized Pydantic v2 models for turns, context documents, pending operations,
# gateway outcomes, routed commands and outbound events. Commands and events are closed
# discriminated unions so every consumer dispatches on a single literal tag.

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CustomBaseModel(BaseModel):
    """Pydantic base model configured to forbid unknown fields for strict validation."""
    model_config = ConfigDict(extra="forbid")


class FrozenModel(BaseModel):
    """Strict and immutable; used for values that must not change once handed out."""
    model_config = ConfigDict(extra="forbid", frozen=True)


# -----------------------------
# Conversation
# -----------------------------

class Speaker(str, Enum):
    user = "user"
    assistant = "assistant"
    system = "system"


class Turn(FrozenModel):
    speaker: Speaker = Field(..., description="Who produced the turn")
    text: str = Field(..., description="Turn body")
    # chatfs: System notices about model failures are kept for the user but never replayed to the model.
    replayable: bool = Field(default=True, description="Whether the turn is sent back to the model")

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(speaker=Speaker.user, text=text)

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(speaker=Speaker.assistant, text=text)

    @classmethod
    def system(cls, text: str, replayable: bool = True) -> "Turn":
        return cls(speaker=Speaker.system, text=text, replayable=replayable)


class ContextDocument(CustomBaseModel):
    path: str = Field(..., description="Sandbox-relative path, unique key")
    content: str = Field(..., description="Document body")
    size_bytes: int = Field(..., description="UTF-8 byte length of content")


class SessionLimits(CustomBaseModel):
    """Per-session size bounds; read bound must stay above the context bound."""
    max_context_bytes: int = Field(default=500 * 1024, gt=0, description="Largest document that may be pinned")
    max_read_bytes: int = Field(default=5 * 1024 * 1024, gt=0, description="Largest file /read will return")
    max_write_bytes: int = Field(default=1024 * 1024, gt=0, description="Largest file /write will send to the model")
    history_turns: int = Field(default=200, ge=0, description="Most recent transcript turns replayed per call")

    @model_validator(mode="after")
    def _read_bound_above_context_bound(self) -> "SessionLimits":
        if self.max_read_bytes <= self.max_context_bytes:
            raise ValueError("max_read_bytes must be larger than max_context_bytes")
        return self


# -----------------------------
# Paths and filesystem outcomes
# -----------------------------

class ResolvedPath(FrozenModel):
    absolute: str = Field(..., description="Canonical absolute location inside the sandbox root")
    display_relative: str = Field(..., description="Root-relative POSIX path; '.' for the root itself")


class SandboxErrorKind(str, Enum):
    outside_sandbox = "outside_sandbox"
    invalid_path = "invalid_path"
    no_root_open = "no_root_open"


class SandboxError(FrozenModel):
    kind: SandboxErrorKind
    raw_path: str
    message: str


class EntryKind(str, Enum):
    file = "file"
    directory = "directory"
    other = "other"


class EntryStat(FrozenModel):
    kind: EntryKind
    size: int
    mtime_ns: int = 0


class DirEntry(FrozenModel):
    name: str
    kind: EntryKind


class GatewayErrorKind(str, Enum):
    not_found = "not_found"
    not_a_directory = "not_a_directory"
    io_error = "io_error"
    outside_root = "outside_root"


class GatewayError(FrozenModel):
    kind: GatewayErrorKind
    message: str


# -----------------------------
# Errors surfaced to the user
# -----------------------------

class ErrorKind(str, Enum):
    sandbox_violation = "sandbox_violation"
    usage = "usage"
    not_found = "not_found"
    already_exists = "already_exists"
    wrong_entry_kind = "wrong_entry_kind"
    too_large = "too_large"
    service_blocked = "service_blocked"
    service_error = "service_error"
    stale_operation = "stale_operation"
    target_changed = "target_changed"
    io_error = "io_error"


# Errors coming from the model service are not echoed back into later model calls.
SERVICE_ERROR_KINDS = (ErrorKind.service_blocked, ErrorKind.service_error)


class OpError(FrozenModel):
    kind: ErrorKind
    text: str


class OperationFailed(Exception):
    """Raised inside handlers; converted into an OpError at the orchestrator boundary."""

    def __init__(self, kind: ErrorKind, text: str) -> None:
        super().__init__(text)
        self.error = OpError(kind=kind, text=text)


# -----------------------------
# Model bridge results
# -----------------------------

class Generated(FrozenModel):
    status: Literal["ok"] = "ok"
    text: str


class Blocked(FrozenModel):
    status: Literal["blocked"] = "blocked"
    reason: str


class ServiceFailure(FrozenModel):
    status: Literal["error"] = "error"
    message: str


GenerateResult = Annotated[Union[Generated, Blocked, ServiceFailure], Field(discriminator="status")]


# -----------------------------
# Pending operations
# -----------------------------

class OperationKind(str, Enum):
    create = "create"
    write = "write"
    delete = "delete"


class OperationState(str, Enum):
    proposed = "proposed"
    applied = "applied"
    discarded = "discarded"
    stale = "stale"
    failed = "failed"


class PendingOperation(CustomBaseModel):
    id: str = Field(..., description="Unique operation id")
    kind: OperationKind
    target: ResolvedPath
    proposed_content: Optional[str] = Field(default=None, description="Content to write on confirm")
    original_content: Optional[str] = Field(default=None, description="Content at proposal time (write only)")
    target_stat: Optional[EntryStat] = Field(default=None, description="Stat at proposal time (delete only)")
    created_at: float
    state: OperationState = OperationState.proposed

    @property
    def target_path(self) -> str:
        return self.target.display_relative


# -----------------------------
# Commands (CommandRouter output)
# -----------------------------

class ReadCommand(FrozenModel):
    command: Literal["read"] = "read"
    path: str


class ListCommand(FrozenModel):
    command: Literal["list"] = "list"
    path: str = "."


class CreateCommand(FrozenModel):
    command: Literal["create"] = "create"
    path: str
    description: Optional[str] = None


class WriteCommand(FrozenModel):
    command: Literal["write"] = "write"
    path: str
    description: str


class DeleteCommand(FrozenModel):
    command: Literal["delete"] = "delete"
    path: str


class ContextAddCommand(FrozenModel):
    command: Literal["context_add"] = "context_add"
    path: str


class ContextListCommand(FrozenModel):
    command: Literal["context_list"] = "context_list"


class ContextClearCommand(FrozenModel):
    command: Literal["context_clear"] = "context_clear"


class HelpCommand(FrozenModel):
    command: Literal["help"] = "help"


class GeneralQuery(FrozenModel):
    command: Literal["query"] = "query"
    text: str


class UsageErrorCommand(FrozenModel):
    command: Literal["usage_error"] = "usage_error"
    prefix: str
    usage: str


Command = Annotated[
    Union[
        ReadCommand,
        ListCommand,
        CreateCommand,
        WriteCommand,
        DeleteCommand,
        ContextAddCommand,
        ContextListCommand,
        ContextClearCommand,
        HelpCommand,
        GeneralQuery,
        UsageErrorCommand,
    ],
    Field(discriminator="command"),
]


# -----------------------------
# Outbound events (UI boundary)
# -----------------------------

class Preview(FrozenModel):
    event: Literal["preview"] = "preview"
    id: str
    kind: OperationKind
    target_path: str
    proposed_content: str
    original_content: Optional[str] = None


class ConfirmationPrompt(FrozenModel):
    event: Literal["confirmation_prompt"] = "confirmation_prompt"
    id: str
    target_path: str


class OperationApplied(FrozenModel):
    event: Literal["operation_applied"] = "operation_applied"
    target_path: str


class OperationDiscarded(FrozenModel):
    event: Literal["operation_discarded"] = "operation_discarded"
    target_path: str


class SystemNotice(FrozenModel):
    event: Literal["system_notice"] = "system_notice"
    text: str


class ErrorEvent(FrozenModel):
    event: Literal["error"] = "error"
    kind: ErrorKind
    text: str


class AssistantReply(FrozenModel):
    event: Literal["assistant_reply"] = "assistant_reply"
    text: str


class FileContent(FrozenModel):
    event: Literal["file_content"] = "file_content"
    path: str
    content: str


class DirectoryListing(FrozenModel):
    event: Literal["directory_listing"] = "directory_listing"
    path: str
    entries: List[DirEntry]


Event = Annotated[
    Union[
        Preview,
        ConfirmationPrompt,
        OperationApplied,
        OperationDiscarded,
        SystemNotice,
        ErrorEvent,
        AssistantReply,
        FileContent,
        DirectoryListing,
    ],
    Field(discriminator="event"),
]
