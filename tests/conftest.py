"""Shared pytest fixtures for the chatfs test suite.

The fakes here keep the orchestrator tests off the disk and off the network:
  - MemoryGateway: a dict-backed FileGateway that records every call it receives.
  - ScriptedBridge: a ModelBridge that replays queued results and records the call history
    it was given.
  - RecordingContext: a Context that collects emitted events and log lines instead of printing.
"""

import itertools
import posixpath
from typing import Dict, List, Optional, Tuple

import pytest

from chatfs.client import ModelBridge
from chatfs.context import Context
from chatfs.gateway import FileGateway
from chatfs.models import (
    DirEntry,
    EntryKind,
    EntryStat,
    Generated,
    GatewayError,
    GatewayErrorKind,
    SessionLimits,
)
from chatfs.orchestrator import Orchestrator

ROOT = "/ws"


class MemoryGateway(FileGateway):
    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.mtimes: Dict[str, int] = {}
        self.dirs = {ROOT}
        self.calls: List[Tuple[str, str]] = []
        self.fail_writes = False
        self.unreadable = set()
        self._clock = itertools.count(1)

    # Test helpers (not recorded as calls)

    def put(self, path: str, content, *, directory: bool = False) -> None:
        if directory:
            self._mkdirs(path)
            return
        data = content.encode("utf-8") if isinstance(content, str) else content
        self._mkdirs(posixpath.dirname(path))
        self.files[path] = data
        self.mtimes[path] = next(self._clock)

    def text(self, path: str) -> str:
        return self.files[path].decode("utf-8")

    def calls_of(self, op: str) -> List[str]:
        return [p for (o, p) in self.calls if o == op]

    def _mkdirs(self, path: str) -> None:
        while path and path not in self.dirs and path != "/":
            self.dirs.add(path)
            path = posixpath.dirname(path)

    # FileGateway

    def read(self, absolute_path: str):
        self.calls.append(("read", absolute_path))
        if absolute_path in self.unreadable:
            return GatewayError(kind=GatewayErrorKind.io_error, message="permission denied")
        if absolute_path not in self.files:
            return GatewayError(kind=GatewayErrorKind.not_found, message="missing")
        return self.files[absolute_path]

    def write(self, absolute_path: str, data: bytes) -> Optional[GatewayError]:
        self.calls.append(("write", absolute_path))
        if self.fail_writes:
            return GatewayError(kind=GatewayErrorKind.io_error, message="disk full")
        self._mkdirs(posixpath.dirname(absolute_path))
        self.files[absolute_path] = data
        self.mtimes[absolute_path] = next(self._clock)
        return None

    def list(self, absolute_path: str):
        self.calls.append(("list", absolute_path))
        if absolute_path in self.files:
            return GatewayError(kind=GatewayErrorKind.not_a_directory, message="not a directory")
        if absolute_path not in self.dirs:
            return GatewayError(kind=GatewayErrorKind.not_found, message="missing")
        entries = []
        for d in self.dirs:
            if d != absolute_path and posixpath.dirname(d) == absolute_path:
                entries.append(DirEntry(name=posixpath.basename(d), kind=EntryKind.directory))
        for f in self.files:
            if posixpath.dirname(f) == absolute_path:
                entries.append(DirEntry(name=posixpath.basename(f), kind=EntryKind.file))
        return entries

    def stat(self, absolute_path: str):
        self.calls.append(("stat", absolute_path))
        if absolute_path in self.files:
            return EntryStat(kind=EntryKind.file, size=len(self.files[absolute_path]), mtime_ns=self.mtimes[absolute_path])
        if absolute_path in self.dirs:
            return EntryStat(kind=EntryKind.directory, size=0)
        return GatewayError(kind=GatewayErrorKind.not_found, message="missing")

    def delete(self, absolute_path: str) -> Optional[GatewayError]:
        self.calls.append(("delete", absolute_path))
        prefix = absolute_path + "/"
        if absolute_path in self.files:
            del self.files[absolute_path]
            return None
        if absolute_path in self.dirs:
            self.dirs = {d for d in self.dirs if d != absolute_path and not d.startswith(prefix)}
            for f in [f for f in self.files if f.startswith(prefix)]:
                del self.files[f]
            return None
        return GatewayError(kind=GatewayErrorKind.not_found, message="missing")


class ScriptedBridge(ModelBridge):
    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: List[list] = []
        self.on_call = None

    def queue(self, *results) -> None:
        self.results.extend(results)

    def generate(self, turns):
        self.calls.append(list(turns))
        if self.on_call is not None:
            self.on_call()
        if not self.results:
            return Generated(text="(no scripted reply)")
        return self.results.pop(0)


class RecordingContext(Context):
    def __init__(self) -> None:
        super().__init__(ROOT)
        self.events = []
        self.logs: List[str] = []
        self.errors: List[str] = []

    def send_to_user(self, message: str) -> None:
        pass

    def log(self, message: str) -> None:
        self.logs.append(message)

    def error_message(self, message: str) -> None:
        self.errors.append(message)

    def emit(self, event) -> None:
        self.events.append(event)


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def bridge() -> ScriptedBridge:
    return ScriptedBridge()


@pytest.fixture
def ctx() -> RecordingContext:
    return RecordingContext()


@pytest.fixture
def limits() -> SessionLimits:
    return SessionLimits()


@pytest.fixture
def session(gateway, bridge, ctx, limits) -> Orchestrator:
    return Orchestrator(ROOT, bridge, gateway=gateway, ctx=ctx, limits=limits)
