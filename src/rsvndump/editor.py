"""Tree-edit state machine turning a diff pass into dump records.

Node headers are written lazily. A directory that is only an ancestor of changed
paths never shows up in the dump. A node is flushed by the first event that needs
it to exist as a record: a change below it, or its own close.
"""

from __future__ import annotations

import contextlib
import tempfile
from typing import TYPE_CHECKING, BinaryIO

from rsvndump.config import NodeAction, NodeKind, NodeRecord
from rsvndump.exceptions import DuplicatePropertyError, NodeAlreadyEmittedError, UnknownNodeError
from rsvndump.logging import logger
from rsvndump.records import write_delete_record, write_node_record

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

    from rsvndump.config import PropertyValue
    from rsvndump.settings import Settings


class DumpEditor:
    """`TreeEditSink` writing the records of one revision to a dump stream.

    One instance serves exactly one diff pass. Use it as a context manager so that
    buffered file content is released on every exit path.
    """

    def __init__(self, out: BinaryIO, settings: Settings, scratch_dir: Path | None = None) -> None:
        self.out = out
        self.settings = settings
        self.scratch_dir = scratch_dir if scratch_dir is not None else settings.scratch_dir
        self.aborted = False
        self.closed = False
        self._nodes: dict[int, NodeRecord] = {}
        self._next_id = 0
        self._resources = contextlib.ExitStack()

    def __enter__(self) -> DumpEditor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    @property
    def open_nodes(self) -> int:
        """Number of nodes opened and not yet closed."""
        return len(self._nodes)

    def release(self) -> None:
        """Drop every open node and its buffered content."""
        self._nodes.clear()
        self._resources.close()

    def open_root(self) -> int:
        # The revision header stands in for the root, it never gets a record.
        return self._create(path="", parent_id=None, kind=NodeKind.DIR, action=NodeAction.CHANGE, emitted=True)

    def add_node(self, path: str, parent_id: int, kind: NodeKind, *, replace: bool = False) -> int:
        self._flush_if_required(self._get(parent_id))
        action = NodeAction.REPLACE if replace else NodeAction.ADD
        return self._create(path=path, parent_id=parent_id, kind=kind, action=action)

    def open_node(self, path: str, parent_id: int, kind: NodeKind) -> int:
        self._flush_if_required(self._get(parent_id))
        return self._create(path=path, parent_id=parent_id, kind=kind, action=NodeAction.CHANGE)

    def delete_node(self, path: str, parent_id: int) -> None:
        self._flush_if_required(self._get(parent_id))
        write_delete_record(self.out, path, self.settings)

    def change_property(self, node_id: int, key: str, value: PropertyValue) -> None:
        """Record a property change, `value` None meaning the property was deleted."""
        node = self._get(node_id)
        if node.is_root:
            logger.debug("ignoring property change on the dump root", key=key)
            return
        if node.emitted:
            raise NodeAlreadyEmittedError(path=node.path)
        if key in node.properties:
            raise DuplicatePropertyError(path=node.path, key=key)
        node.properties[key] = value

    def apply_content(self, node_id: int, *, delta: bool = False) -> BinaryIO:
        """Return the file the new text of a node is to be written into.

        Args:
            node_id (int): the file node receiving new content
            delta (bool): whether the collaborator writes delta-encoded text

        Returns:
            BinaryIO: a scratch file owned by this editor, callers must not close it
        """
        node = self._get(node_id)
        if node.emitted:
            raise NodeAlreadyEmittedError(path=node.path)
        if node.content is None:
            node.content = self._resources.enter_context(tempfile.TemporaryFile(dir=self.scratch_dir))
        else:
            node.content.seek(0)
            node.content.truncate()
        node.content_is_delta = delta
        return node.content

    def close_node(self, node_id: int) -> None:
        node = self._get(node_id)
        try:
            if not node.emitted and node.requires_record:
                self._flush(node)
        finally:
            self._nodes.pop(node_id, None)
            if node.content is not None:
                node.content.close()
                node.content = None

    def close_edit(self) -> None:
        if self._nodes:
            logger.debug("edit closed with open nodes", paths=[n.path for n in self._nodes.values()])
        self.closed = True
        self.release()

    def abort(self) -> None:
        logger.warning("tree edit aborted")
        self.aborted = True
        self.release()

    def _create(
        self,
        *,
        path: str,
        parent_id: int | None,
        kind: NodeKind,
        action: NodeAction,
        emitted: bool = False,
    ) -> int:
        node_id = self._next_id
        self._next_id += 1
        self._nodes[node_id] = NodeRecord(
            node_id=node_id,
            parent_id=parent_id,
            path=path,
            kind=kind,
            action=action,
            emitted=emitted,
        )
        return node_id

    def _get(self, node_id: int) -> NodeRecord:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id=node_id) from None

    def _flush_if_required(self, node: NodeRecord) -> None:
        if not node.emitted and node.requires_record:
            self._flush(node)

    def _flush(self, node: NodeRecord) -> None:
        # parents must precede their children in the dump
        if node.parent_id is not None and node.parent_id in self._nodes:
            self._flush_if_required(self._nodes[node.parent_id])
        logger.debug("writing node", path=node.path, kind=str(node.kind), action=str(node.action))
        write_node_record(self.out, node, self.settings)
