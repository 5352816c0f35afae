# tests/test_pending.py
import pytest

from chatfs.models import OperationKind, OperationState, PendingOperation, ResolvedPath
from chatfs.pending import PendingOperationTable


def _op(op_id, path="a.txt", kind=OperationKind.create):
    return PendingOperation(
        id=op_id,
        kind=kind,
        target=ResolvedPath(absolute=f"/ws/{path}", display_relative=path),
        proposed_content="x",
        created_at=0.0,
    )


def test_consume_exactly_once():
    table = PendingOperationTable()
    table.stage(_op("op-1"))
    op = table.consume("op-1", OperationState.applied)
    assert op.state == OperationState.applied
    assert table.consume("op-1", OperationState.applied) is None
    assert table.consumed_state("op-1") == OperationState.applied
    assert len(table) == 0


def test_second_proposal_for_same_path_replaces_first():
    table = PendingOperationTable()
    table.stage(_op("op-1"))
    replaced = table.stage(_op("op-2", kind=OperationKind.delete))
    assert replaced.id == "op-1"
    assert replaced.state == OperationState.stale
    assert len(table) == 1
    assert table.get("op-1") is None
    assert "op-2" in table


def test_distinct_paths_coexist():
    table = PendingOperationTable()
    table.stage(_op("op-1", "a.txt"))
    table.stage(_op("op-2", "b.txt"))
    assert "op-1" in table and "op-2" in table
    assert len(table) == 2


def test_consume_requires_terminal_state():
    table = PendingOperationTable()
    table.stage(_op("op-1"))
    with pytest.raises(ValueError):
        table.consume("op-1", OperationState.proposed)


def test_clear_marks_everything_stale():
    table = PendingOperationTable()
    table.stage(_op("op-1", "a.txt"))
    table.stage(_op("op-2", "b.txt"))
    dropped = table.clear()
    assert {op.state for op in dropped} == {OperationState.stale}
    assert len(table) == 0
    assert table.consumed_state("op-2") == OperationState.stale
