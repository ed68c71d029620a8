"""Interfaces between the dumper and the repository access service."""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol

if TYPE_CHECKING:
    from rsvndump.config import NodeKind, PropertyValue, RevisionMetadata


class TreeEditSink(Protocol):
    """Receiver of the tree-edit stream describing one revision.

    Calls arrive sequentially. A parent is opened before its children and the
    children are closed before their parent. Nodes are referred to by the integer
    identifiers returned from `open_root`, `add_node` and `open_node`.
    """

    def open_root(self) -> int: ...

    def add_node(self, path: str, parent_id: int, kind: NodeKind, *, replace: bool = False) -> int: ...

    def open_node(self, path: str, parent_id: int, kind: NodeKind) -> int: ...

    def delete_node(self, path: str, parent_id: int) -> None: ...

    def change_property(self, node_id: int, key: str, value: PropertyValue) -> None: ...

    def apply_content(self, node_id: int, *, delta: bool = False) -> BinaryIO: ...

    def close_node(self, node_id: int) -> None: ...

    def close_edit(self) -> None: ...

    def abort(self) -> None: ...


class RepositoryAccess(Protocol):
    """Read access to a remote repository.

    Every method raises `RepositoryAccessError` (or a subclass) on failure.

    Attributes:
        url: URL of the dumped path.
        sub_path: Path of `url` below the repository root, empty for the root itself.
    """

    url: str
    sub_path: str

    def resolve_head(self) -> int:
        """Latest revision in which the dumped path changed."""
        ...

    def path_exists_at(self, path: str, revision: int) -> bool:
        """Whether `path` (relative to `url`) exists in `revision`."""
        ...

    def fetch_uuid(self) -> str: ...

    def detect_range(self, end: int) -> tuple[int, int]:
        """Narrowest range holding the history of the dumped path up to `end`."""
        ...

    def fetch_log_range(self, start: int, end: int) -> list[RevisionMetadata]:
        """Metadata of every revision in [start, end] that touches the dumped path."""
        ...

    def fetch_log(self, revision: int, end: int) -> RevisionMetadata | None:
        """Metadata of the first revision in [revision, end] that touches the dumped path.

        None when no revision in that range touches it.
        """
        ...

    def reparent_to_path(self, path: str, revision: int) -> bool:
        """Point the session at `path`.

        Returns:
            bool: True when `path` is a single file, in which case the session is
                moved to its parent directory.
        """
        ...

    def run_tree_diff(self, base: int, target: int, sink: TreeEditSink) -> None:
        """Drive `sink` with the changes from `base` to `target`.

        When `base` equals `target` the diff is taken against an empty tree.
        Properties removed since `base` are reported with a None value.
        """
        ...
