# chatfs: The session's append-only conversation log and the construction of the ephemeral
# call history sent to the model. Priming turns built here are never written back.

from typing import Iterable, List, Optional, Tuple

from .models import ContextDocument, Speaker, Turn
from .prompts import get_prompt


class Transcript:
    """Owned, append-only sequence of turns; readers only ever get immutable snapshots."""

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def append(self, turn: Turn) -> None:
        if not isinstance(turn, Turn):
            raise TypeError("Transcript.append requires a Turn")
        self._turns.append(turn)

    def snapshot(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def build_call_history(
        self,
        for_message: str,
        context_docs: Iterable[ContextDocument],
        max_turns: Optional[int] = None,
    ) -> List[Turn]:
        """
        Build the turn sequence for one model call.

        1. Persisted turns, minus the trailing user turn that triggered this call.
        2. Turns flagged non-replayable are dropped; at most max_turns of the rest are kept.
        3. One synthetic user/assistant pair per context document.
        4. The live request (for_message) as the final user turn.
        """
        prior = list(self._turns)
        if prior and prior[-1].speaker == Speaker.user:
            prior = prior[:-1]
        prior = [t for t in prior if t.replayable]
        if max_turns is not None and max_turns >= 0 and len(prior) > max_turns:
            prior = prior[len(prior) - max_turns:] if max_turns else []

        history: List[Turn] = list(prior)
        for doc in context_docs:
            history.extend(priming_turns(doc))
        history.append(Turn.user(for_message))
        return history


def priming_turns(doc: ContextDocument) -> List[Turn]:
    """The synthetic user/assistant pair that injects one pinned document."""
    return [
        Turn.user(get_prompt("context_file.txt", path=doc.path, content=doc.content)),
        Turn.assistant(get_prompt("context_ack.txt", path=doc.path)),
    ]
