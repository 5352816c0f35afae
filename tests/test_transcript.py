# tests/test_transcript.py
import pytest

from chatfs.models import ContextDocument, Speaker, Turn
from chatfs.transcript import Transcript, priming_turns


def _transcript(*turns):
    t = Transcript()
    for turn in turns:
        t.append(turn)
    return t


def test_snapshot_is_immutable_copy():
    t = _transcript(Turn.user("hi"))
    snap = t.snapshot()
    t.append(Turn.assistant("hello"))
    assert len(snap) == 1
    assert isinstance(snap, tuple)
    with pytest.raises(Exception):
        snap[0].text = "changed"


def test_append_rejects_non_turns():
    with pytest.raises(TypeError):
        Transcript().append({"speaker": "user", "text": "x"})


def test_empty_context_history_equals_snapshot_minus_current_plus_current():
    t = _transcript(Turn.user("q1"), Turn.assistant("a1"), Turn.user("q2"))
    history = t.build_call_history("q2", [])
    assert history == list(t.snapshot()[:-1]) + [Turn.user("q2")]


def test_live_message_replaces_trailing_user_turn():
    t = _transcript(Turn.user("q1"), Turn.assistant("a1"), Turn.user("/write a.txt make it better"))
    history = t.build_call_history("INSTRUCTION", [])
    assert history[-1] == Turn.user("INSTRUCTION")
    assert all(turn.text != "/write a.txt make it better" for turn in history)


def test_context_docs_are_primed_between_history_and_live_turn():
    t = _transcript(Turn.user("q1"), Turn.assistant("a1"), Turn.user("q2"))
    docs = [ContextDocument(path="a.txt", content="AAA", size_bytes=3)]
    history = t.build_call_history("q2", docs)
    assert history[:2] == [Turn.user("q1"), Turn.assistant("a1")]
    assert history[2].speaker == Speaker.user
    assert "a.txt" in history[2].text and "AAA" in history[2].text
    assert history[3].speaker == Speaker.assistant
    assert history[4] == Turn.user("q2")
    # Priming never leaks into the persisted transcript.
    assert len(t) == 3


def test_non_replayable_turns_are_skipped():
    t = _transcript(
        Turn.user("q1"),
        Turn.system("Error calling the model: boom", replayable=False),
        Turn.system("Added to context: a.txt"),
        Turn.user("q2"),
    )
    history = t.build_call_history("q2", [])
    texts = [turn.text for turn in history]
    assert "Error calling the model: boom" not in texts
    assert "Added to context: a.txt" in texts


def test_history_is_capped_to_most_recent_turns():
    t = _transcript(*[Turn.user(f"m{i}") for i in range(10)])
    history = t.build_call_history("m9", [], max_turns=3)
    assert [turn.text for turn in history] == ["m6", "m7", "m8", "m9"]


def test_priming_turns_format_braces_safely():
    doc = ContextDocument(path="cfg.json", content='{"a": {"b": 1}}', size_bytes=15)
    user, ack = priming_turns(doc)
    assert '{"a": {"b": 1}}' in user.text
    assert "cfg.json" in ack.text
