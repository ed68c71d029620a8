from __future__ import annotations

import io
import posixpath
import shutil
from typing import TYPE_CHECKING

from rsvndump.config import (
    DUMP_FORMAT_MAGIC,
    HEADER_CONTENT_LENGTH,
    HEADER_NODE_ACTION,
    HEADER_NODE_KIND,
    HEADER_NODE_PATH,
    HEADER_PROP_CONTENT_LENGTH,
    HEADER_PROP_DELTA,
    HEADER_REVISION_NUMBER,
    HEADER_TEXT_CONTENT_LENGTH,
    HEADER_TEXT_DELTA,
    HEADER_UUID,
    PROP_AUTHOR,
    PROP_DATE,
    PROP_LOG,
    NodeAction,
)
from rsvndump.exceptions import NodeAlreadyEmittedError, PropertyLengthMismatchError
from rsvndump.properties import PROPS_END, encode_properties, encoded_length, properties_length

if TYPE_CHECKING:
    from typing import BinaryIO

    from rsvndump.config import NodeRecord, PropertyValue, RevisionMetadata
    from rsvndump.settings import Settings


def header_line(name: str, value: object) -> bytes:
    """Format a single ``Name: value`` header line."""
    return f"{name}: {value}\n".encode()


def write_stream_header(out: BinaryIO, *, version: int, uuid: str | None = None) -> None:
    """Write the format version record and, when given, the repository UUID record.

    Args:
        out (BinaryIO): the dump stream
        version (int): dump format version, 2 for full texts and 3 for deltas
        uuid (str | None): the repository UUID, omitted when None
    """
    out.write(header_line(DUMP_FORMAT_MAGIC, version) + b"\n")
    if uuid:
        out.write(header_line(HEADER_UUID, uuid) + b"\n")


def revision_properties(meta: RevisionMetadata) -> dict[str, PropertyValue]:
    """Collect the revision properties that are present, in dump order.

    Absent and empty slots are skipped entirely.

    Args:
        meta (RevisionMetadata): the revision log information

    Returns:
        dict[str, PropertyValue]: ``svn:log``, ``svn:author`` and ``svn:date`` when set
    """
    slots = ((PROP_LOG, meta.message), (PROP_AUTHOR, meta.author), (PROP_DATE, meta.date))
    return {key: value for key, value in slots if value}


def write_revision_header(out: BinaryIO, meta: RevisionMetadata, number: int) -> int:
    """Write a revision record.

    The record carries no body beyond its properties, so the content length always
    equals the property content length.

    Args:
        out (BinaryIO): the dump stream
        meta (RevisionMetadata): the revision log information
        number (int): revision number written to the dump

    Returns:
        int: the property content length that was declared
    """
    props = revision_properties(meta)
    props_length = sum(encoded_length(k, v) for k, v in props.items())
    if props_length > 0:
        props_length += len(PROPS_END)

    buf = io.BytesIO()
    buf.write(header_line(HEADER_REVISION_NUMBER, number))
    buf.write(header_line(HEADER_PROP_CONTENT_LENGTH, props_length))
    buf.write(header_line(HEADER_CONTENT_LENGTH, props_length))
    buf.write(b"\n")
    if props_length > 0:
        buf.write(_checked_properties(props, props_length))
        buf.write(b"\n")
    out.write(buf.getvalue())
    return props_length


def node_path(path: str, settings: Settings) -> str:
    """Path written to the ``Node-path`` header of a node.

    A dump of a single file always reports the file's own name. The user prefix
    is prepended verbatim.

    Args:
        path (str): path of the node relative to the dumped root
        settings (Settings): the dump options

    Returns:
        str: the path as it appears in the dump
    """
    if settings.root_is_file:
        path = posixpath.basename(settings.url.rstrip("/"))
    return f"{settings.prefix}{path}"


def write_node_record(out: BinaryIO, node: NodeRecord, settings: Settings) -> None:
    """Write the header of `node`, followed by its properties and buffered text.

    The node is marked as emitted before anything is written.

    Args:
        out (BinaryIO): the dump stream
        node (NodeRecord): the node to write
        settings (Settings): the dump options

    Raises:
        NodeAlreadyEmittedError: if the node has already been written
    """
    if node.emitted:
        raise NodeAlreadyEmittedError(path=node.path)
    node.emitted = True

    buf = io.BytesIO()
    buf.write(header_line(HEADER_NODE_PATH, node_path(node.path, settings)))
    match node.action:
        case NodeAction.DELETE:
            buf.write(header_line(HEADER_NODE_ACTION, node.action))
            buf.write(b"\n\n")
            out.write(buf.getvalue())
            return
        case NodeAction.ADD | NodeAction.CHANGE | NodeAction.REPLACE:
            buf.write(header_line(HEADER_NODE_KIND, node.kind))
            buf.write(header_line(HEADER_NODE_ACTION, node.action))

    props_block = b""
    if node.properties:
        props = node.properties
        if settings.use_deltas and node.action is NodeAction.CHANGE:
            buf.write(header_line(HEADER_PROP_DELTA, "true"))
        else:
            # a full list replaces the stored one, deleted keys are absent from it
            props = {k: v for k, v in props.items() if v is not None}
        props_block = _checked_properties(props, properties_length(props))

    text_length = None
    if node.content is not None:
        text_length = node.content.seek(0, io.SEEK_END)
        node.content.seek(0)
        if node.content_is_delta:
            buf.write(header_line(HEADER_TEXT_DELTA, "true"))

    if not props_block and text_length is None:
        buf.write(b"\n\n")
        out.write(buf.getvalue())
        return

    if props_block:
        buf.write(header_line(HEADER_PROP_CONTENT_LENGTH, len(props_block)))
    if text_length is not None:
        buf.write(header_line(HEADER_TEXT_CONTENT_LENGTH, text_length))
    buf.write(header_line(HEADER_CONTENT_LENGTH, len(props_block) + (text_length or 0)))
    buf.write(b"\n")
    buf.write(props_block)
    out.write(buf.getvalue())
    if node.content is not None:
        shutil.copyfileobj(node.content, out)
    out.write(b"\n\n")


def write_delete_record(out: BinaryIO, path: str, settings: Settings) -> None:
    """Write a delete record, which has neither kind, lengths nor body."""
    out.write(
        header_line(HEADER_NODE_PATH, node_path(path, settings))
        + header_line(HEADER_NODE_ACTION, NodeAction.DELETE)
        + b"\n\n",
    )


def _checked_properties(props: dict[str, PropertyValue], expected: int) -> bytes:
    block = encode_properties(props)
    if len(block) != expected:
        raise PropertyLengthMismatchError(expected=expected, actual=len(block))
    return block
