from __future__ import annotations

from enum import StrEnum, auto
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, Field

DUMP_FORMAT_MAGIC = "SVN-fs-dump-format-version"
DUMP_FORMAT_FULLTEXT = 2
DUMP_FORMAT_DELTAS = 3

HEADER_UUID = "UUID"
HEADER_REVISION_NUMBER = "Revision-number"
HEADER_NODE_PATH = "Node-path"
HEADER_NODE_KIND = "Node-kind"
HEADER_NODE_ACTION = "Node-action"
HEADER_PROP_DELTA = "Prop-delta"
HEADER_TEXT_DELTA = "Text-delta"
HEADER_PROP_CONTENT_LENGTH = "Prop-content-length"
HEADER_TEXT_CONTENT_LENGTH = "Text-content-length"
HEADER_CONTENT_LENGTH = "Content-length"

PROP_LOG = "svn:log"
PROP_AUTHOR = "svn:author"
PROP_DATE = "svn:date"

PADDING_LOG_MESSAGE = "This is an empty revision for padding."

PropertyValue = str | bytes | None


class NodeKind(StrEnum):
    """Kind of a versioned node, spelled the way the dump format does."""

    FILE = auto()
    DIR = auto()


class NodeAction(StrEnum):
    """What happened to a node in a revision."""

    ADD = auto()
    CHANGE = auto()
    DELETE = auto()
    REPLACE = auto()


class RevisionMetadata(BaseModel):
    """Log information of one repository revision.

    Attributes:
        revision: Revision number in the source repository.
        author: Committer name, if the repository reports one.
        date: Commit date in the repository's fixed ISO format.
        message: Log message.
    """

    model_config = ConfigDict(frozen=True)

    revision: int = Field(..., ge=0, description="Source revision number")
    author: str | None = Field(default=None, description="svn:author")
    date: str | None = Field(default=None, description="svn:date")
    message: str | None = Field(default=None, description="svn:log")


class NodeRecord(BaseModel):
    """State of one node touched during a single diff pass.

    The record lives from the first notification for its path until the node is
    closed. Deleted paths never get a record.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    node_id: int = Field(..., description="Identifier unique within one diff pass")
    parent_id: int | None = Field(default=None, description="Identifier of the parent directory")
    path: str = Field(default="", description="Path relative to the dumped root")
    kind: NodeKind = Field(default=NodeKind.DIR)
    action: NodeAction = Field(default=NodeAction.CHANGE)
    properties: dict[str, PropertyValue] = Field(
        default_factory=dict,
        description="Changed properties in arrival order, None marks a deletion",
    )
    emitted: bool = Field(default=False, description="Header already written to the stream")
    content: BinaryIO | None = Field(default=None, description="Binary file holding the buffered text")
    content_is_delta: bool = Field(default=False, description="Buffered text is delta-encoded")

    @property
    def is_root(self) -> bool:
        """The root node of a diff pass has no parent."""
        return self.parent_id is None

    @property
    def requires_record(self) -> bool:
        """Whether this node must appear in the dump before it is closed."""
        match (self.kind, self.action):
            case (NodeKind.DIR, NodeAction.CHANGE):
                return bool(self.properties)
            case (NodeKind.FILE, _) | (_, NodeAction.ADD | NodeAction.REPLACE):
                return True
            case _:
                return False
