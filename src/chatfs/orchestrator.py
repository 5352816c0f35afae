# chatfs: One chat session. Owns the transcript, pinned context and pending proposals for a
# single sandbox root; serializes every inbound action and publishes the resulting events to
# the session Context. Nothing raised below this layer escapes it.

import threading
from typing import List, Optional

from .client import ModelBridge
from .context import Context
from .context_store import ContextStore
from .gateway import FileGateway, LocalFileGateway
from .handlers import CommandHandlers, Outcome
from .models import SERVICE_ERROR_KINDS, ErrorEvent, ErrorKind, Event, OpError, SessionLimits, Turn
from .pending import PendingOperationTable
from .router import CommandRouter
from .sandbox import PathSandbox
from .transcript import Transcript


class Orchestrator:
    def __init__(
        self,
        root: Optional[str],
        bridge: ModelBridge,
        gateway: Optional[FileGateway] = None,
        ctx: Optional[Context] = None,
        limits: Optional[SessionLimits] = None,
    ) -> None:
        """
        Build a session bound to root.

        root is fixed for the session's lifetime. gateway defaults to the local disk and
        limits to SessionLimits(); neither is read from the environment here.
        """
        self.ctx = ctx or Context(root)
        self.limits = limits or SessionLimits()
        self.sandbox = PathSandbox(root)
        self.gateway = gateway or LocalFileGateway(self.sandbox.root, self.ctx)
        self.router = CommandRouter()
        self.transcript = Transcript()
        self.context_store = ContextStore(self.limits.max_context_bytes)
        self.pending = PendingOperationTable()
        self.handlers = CommandHandlers(
            sandbox=self.sandbox,
            gateway=self.gateway,
            bridge=bridge,
            transcript=self.transcript,
            context_store=self.context_store,
            pending=self.pending,
            limits=self.limits,
            ctx=self.ctx,
        )
        self._lock = threading.RLock()

    @property
    def closed(self) -> bool:
        return self.handlers.closed

    # ---------- Inbound actions ----------

    def handle_message(self, text: str) -> List[Event]:
        """Record the user's message, run the command it names and publish the outcome."""
        with self._lock:
            if self.closed:
                return self._publish(OpError(kind=ErrorKind.stale_operation, text="Session is closed."), record=False)
            self.transcript.append(Turn.user(text))
            command = self.router.route(text)
            return self._run(lambda: self.handlers.dispatch(command), f"handling {command.command}")

    def confirm(self, op_id: str) -> List[Event]:
        with self._lock:
            return self._run(lambda: self.handlers.confirm(op_id), f"confirming {op_id}")

    def discard(self, op_id: str) -> List[Event]:
        with self._lock:
            return self._run(lambda: self.handlers.discard(op_id), f"discarding {op_id}")

    def close(self) -> None:
        """
        End the session. Outstanding proposals become stale; a model reply still in flight
        is dropped when it arrives. Does not wait for the session lock.
        """
        dropped = self.handlers.shutdown()
        if dropped:
            self.ctx.log(f"Session closed; {len(dropped)} pending proposal(s) marked stale.")

    # ---------- Internals ----------

    def _run(self, action, label: str) -> List[Event]:
        try:
            outcome: Outcome = action()
        except Exception as e:
            # Last line of defence: a bug in a handler must not take down the session.
            self.ctx.error_message(f"Unexpected failure while {label}: {e}")
            outcome = OpError(kind=ErrorKind.io_error, text=f"Unexpected failure while {label}: {e}")
        return self._publish(outcome)

    def _publish(self, outcome: Outcome, record: bool = True) -> List[Event]:
        if isinstance(outcome, OpError):
            events: List[Event] = [ErrorEvent(kind=outcome.kind, text=outcome.text)]
            if record:
                self.transcript.append(Turn.system(outcome.text, replayable=outcome.kind not in SERVICE_ERROR_KINDS))
        else:
            events = list(outcome.events)
            for turn in outcome.turns:
                self.transcript.append(turn)
        for event in events:
            self.ctx.emit(event)
        return events
