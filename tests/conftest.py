from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from rsvndump.config import NodeKind, RevisionMetadata
from rsvndump.exceptions import DiffFailedError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from rsvndump.repository import TreeEditSink

    ChangeFn = Callable[[TreeEditSink, int], None]


class FakeRepository:
    """In-memory `RepositoryAccess` recording every call it receives.

    `changes` maps a target revision to a function driving the sink below the
    already opened root node.
    """

    def __init__(
        self,
        revisions: Iterable[int | RevisionMetadata],
        changes: dict[int, ChangeFn] | None = None,
        *,
        url: str = "svn://example.org/repo",
        sub_path: str = "",
        head: int | None = None,
        is_file: bool = False,
        missing: Iterable[int] = (),
        failing: Iterable[int] = (),
    ) -> None:
        metas = [r if isinstance(r, RevisionMetadata) else make_meta(r) for r in revisions]
        self.revisions = {m.revision: m for m in metas}
        self.changes = changes or {}
        self.url = url
        self.sub_path = sub_path
        self.head = head if head is not None else max(self.revisions)
        self.is_file = is_file
        self.missing = set(missing)
        self.failing = set(failing)
        self.calls: list[tuple[object, ...]] = []

    def resolve_head(self) -> int:
        self.calls.append(("resolve_head",))
        return self.head

    def path_exists_at(self, path: str, revision: int) -> bool:
        self.calls.append(("path_exists_at", path, revision))
        return revision not in self.missing

    def fetch_uuid(self) -> str:
        self.calls.append(("fetch_uuid",))
        return "6fc41ee3-3a6a-4bd0-a7ea-1b9a3b3a8f5e"

    def detect_range(self, end: int) -> tuple[int, int]:
        self.calls.append(("detect_range", end))
        return min(self.revisions), end

    def fetch_log_range(self, start: int, end: int) -> list[RevisionMetadata]:
        self.calls.append(("fetch_log_range", start, end))
        return [self.revisions[r] for r in sorted(self.revisions) if start <= r <= end]

    def fetch_log(self, revision: int, end: int) -> RevisionMetadata | None:
        self.calls.append(("fetch_log", revision, end))
        for r in sorted(self.revisions):
            if revision <= r <= end:
                return self.revisions[r]
        return None

    def reparent_to_path(self, path: str, revision: int) -> bool:
        self.calls.append(("reparent_to_path", path, revision))
        return self.is_file

    def run_tree_diff(self, base: int, target: int, sink: TreeEditSink) -> None:
        self.calls.append(("run_tree_diff", base, target))
        if target in self.failing:
            raise DiffFailedError(operation="diff", message="connection reset", base=base, target=target)
        root = sink.open_root()
        change = self.changes.get(target)
        if change is not None:
            change(sink, root)
        if getattr(sink, "aborted", False):
            return
        sink.close_node(root)
        sink.close_edit()

    def names(self) -> list[object]:
        return [c[0] for c in self.calls]

    def diffs(self) -> list[tuple[object, ...]]:
        return [c[1:] for c in self.calls if c[0] == "run_tree_diff"]


def make_meta(revision: int, message: str | None = None) -> RevisionMetadata:
    return RevisionMetadata(
        revision=revision,
        author="alice",
        date=f"2009-01-{revision % 28 + 1:02d}T12:00:00.000000Z",
        message=message if message is not None else f"commit {revision}",
    )


def add_file(path: str, content: bytes) -> ChangeFn:
    def change(sink: TreeEditSink, root: int) -> None:
        node = sink.add_node(path, root, NodeKind.FILE)
        sink.apply_content(node).write(content)
        sink.close_node(node)

    return change


@pytest.fixture
def make_repo() -> type[FakeRepository]:
    return FakeRepository


@pytest.fixture
def meta() -> Callable[..., RevisionMetadata]:
    return make_meta


@pytest.fixture
def adding_file() -> Callable[[str, bytes], ChangeFn]:
    return add_file
