# tests/test_main.py
from chatfs.main import handle_repl_command, run_repl


class FakeSession:
    def __init__(self):
        self.actions = []
        self.closed = False

    def handle_message(self, text):
        self.actions.append(("message", text))

    def confirm(self, op_id):
        self.actions.append(("confirm", op_id))

    def discard(self, op_id):
        self.actions.append(("discard", op_id))

    def close(self):
        self.closed = True


def test_repl_commands_drive_the_session(ctx):
    session = FakeSession()
    assert handle_repl_command(session, ctx, ":confirm op-1") is True
    assert handle_repl_command(session, ctx, ":discard op-2") is True
    assert handle_repl_command(session, ctx, ":confirm") is True
    assert handle_repl_command(session, ctx, ":bogus") is True
    assert handle_repl_command(session, ctx, ":quit") is False
    assert session.actions == [("confirm", "op-1"), ("discard", "op-2")]
    assert len(ctx.errors) == 2


def test_run_repl_passes_chat_text_and_closes_on_eof(ctx, monkeypatch):
    lines = iter(["/list", "", "hello there", ":confirm op-9"])

    def fake_input(prompt):
        try:
            return next(lines)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)
    session = FakeSession()
    run_repl(session, ctx)
    assert session.actions == [("message", "/list"), ("message", "hello there"), ("confirm", "op-9")]
    assert session.closed
