# chatfs: Pinned documents injected into every model call until removed. Size is bounded per
# document; oversized input is rejected and reported, never truncated.

from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from .fs import utf8_size
from .models import ContextDocument, CustomBaseModel


class AddStatus(str, Enum):
    added = "added"
    updated = "updated"
    skipped = "skipped"
    failed = "failed"


class AddOutcome(CustomBaseModel):
    path: str
    status: AddStatus
    size_bytes: int = 0
    reason: Optional[str] = None


class DirectoryEntryContent(CustomBaseModel):
    """A file child of a directory being pinned; content is None when oversized or unreadable."""
    path: str
    size_bytes: int
    content: Optional[str] = None
    error: Optional[str] = None


class DirectoryAddReport(CustomBaseModel):
    directory: str
    outcomes: List[AddOutcome] = Field(default_factory=list)
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


class ContextStore:
    """Ordered map of sandbox-relative path -> ContextDocument."""

    def __init__(self, max_document_bytes: int) -> None:
        self.max_document_bytes = max_document_bytes
        self._docs: Dict[str, ContextDocument] = {}

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, path: str) -> bool:
        return path in self._docs

    def add(self, path: str, content: str) -> AddOutcome:
        """Pin or refresh one document. Oversized content is skipped with a reason."""
        size = utf8_size(content)
        if size > self.max_document_bytes:
            return AddOutcome(
                path=path,
                status=AddStatus.skipped,
                size_bytes=size,
                reason=f"larger than {self.max_document_bytes // 1024}KB",
            )
        status = AddStatus.updated if path in self._docs else AddStatus.added
        # Re-adding keeps the original pin order.
        self._docs[path] = ContextDocument(path=path, content=content, size_bytes=size)
        return AddOutcome(path=path, status=status, size_bytes=size)

    def add_directory(self, path: str, entries: List[DirectoryEntryContent]) -> DirectoryAddReport:
        """
        Pin the immediate file children of a directory.

        Entries are the already-read children (the caller does not recurse). Each entry is
        reported individually; aggregate counts are filled for summary display.
        """
        report = DirectoryAddReport(directory=path)
        for entry in entries:
            if entry.size_bytes > self.max_document_bytes:
                outcome = AddOutcome(
                    path=entry.path,
                    status=AddStatus.skipped,
                    size_bytes=entry.size_bytes,
                    reason=f"larger than {self.max_document_bytes // 1024}KB",
                )
            elif entry.content is None:
                outcome = AddOutcome(
                    path=entry.path,
                    status=AddStatus.failed,
                    size_bytes=entry.size_bytes,
                    reason=entry.error or "unreadable",
                )
            else:
                outcome = self.add(entry.path, entry.content)
            report.outcomes.append(outcome)
            if outcome.status == AddStatus.added:
                report.added += 1
            elif outcome.status == AddStatus.updated:
                report.updated += 1
            elif outcome.status == AddStatus.skipped:
                report.skipped += 1
            else:
                report.failed += 1
        return report

    def get(self, path: str) -> Optional[ContextDocument]:
        return self._docs.get(path)

    def list(self) -> List[ContextDocument]:
        return [doc.model_copy() for doc in self._docs.values()]

    def clear(self) -> int:
        count = len(self._docs)
        self._docs.clear()
        return count

    def refresh_if_pinned(self, path: str, content: str) -> Optional[AddOutcome]:
        """
        Update a pinned document after chatfs itself rewrote the file.

        Returns None when path is not pinned. An `updated` outcome means the copy was refreshed;
        a `skipped` outcome means the new content exceeds the bound and the document was
        unpinned (a stale copy must not keep being injected). Callers report the latter.
        """
        if path not in self._docs:
            return None
        outcome = self.add(path, content)
        if outcome.status == AddStatus.skipped:
            del self._docs[path]
        return outcome

    def remove_if_deleted(self, path: str) -> List[str]:
        """Drop the document at path and any pinned under it (a deleted directory)."""
        if path == ".":
            removed = list(self._docs.keys())
        else:
            prefix = path.rstrip("/") + "/"
            removed = [p for p in self._docs if p == path or p.startswith(prefix)]
        for p in removed:
            del self._docs[p]
        return removed
