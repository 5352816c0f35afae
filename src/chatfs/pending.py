# chatfs: Proposals awaiting user confirmation. Each id is consumed exactly once; at most one
# proposal is outstanding per target path (a newer proposal supersedes the older one).

from typing import Dict, List, Optional

from .models import OperationState, PendingOperation


class PendingOperationTable:
    """
    Outstanding proposals keyed by id, plus the terminal state of every consumed id so a late
    confirm/discard can be told apart from an id that never existed.
    """

    def __init__(self) -> None:
        self._outstanding: Dict[str, PendingOperation] = {}
        self._by_path: Dict[str, str] = {}
        self._consumed: Dict[str, OperationState] = {}

    def __len__(self) -> int:
        return len(self._outstanding)

    def __contains__(self, op_id: str) -> bool:
        return op_id in self._outstanding

    def stage(self, op: PendingOperation) -> Optional[PendingOperation]:
        """
        Add a proposal. Returns the proposal it superseded for the same target path, if any;
        that proposal is marked stale and its id can no longer be confirmed.
        """
        replaced: Optional[PendingOperation] = None
        key = op.target.absolute
        prev_id = self._by_path.get(key)
        if prev_id is not None:
            replaced = self._consume(prev_id, OperationState.stale)
        self._outstanding[op.id] = op
        self._by_path[key] = op.id
        return replaced

    def get(self, op_id: str) -> Optional[PendingOperation]:
        return self._outstanding.get(op_id)

    def consumed_state(self, op_id: str) -> Optional[OperationState]:
        return self._consumed.get(op_id)

    def consume(self, op_id: str, state: OperationState) -> Optional[PendingOperation]:
        """Move an outstanding proposal to a terminal state; None when it is not outstanding."""
        if state == OperationState.proposed:
            raise ValueError("consume requires a terminal state")
        return self._consume(op_id, state)

    def _consume(self, op_id: str, state: OperationState) -> Optional[PendingOperation]:
        op = self._outstanding.pop(op_id, None)
        if op is None:
            return None
        if self._by_path.get(op.target.absolute) == op_id:
            del self._by_path[op.target.absolute]
        op.state = state
        self._consumed[op_id] = state
        return op

    def clear(self) -> List[PendingOperation]:
        """Mark every outstanding proposal stale (session end)."""
        return [self._consume(op_id, OperationState.stale) for op_id in list(self._outstanding)]
