from dataclasses import dataclass


@dataclass(frozen=True)
class RsvndumpError(Exception):
    """Base exception for errors in the rsvndump package."""

    def __str__(self) -> str:
        message = getattr(self, "message", "")
        return message or (self.__doc__ or "").strip()


@dataclass(frozen=True)
class InvalidRevisionRangeError(RsvndumpError):
    """Raised when a revision range given on the command line cannot be parsed."""

    text: str

    def __str__(self) -> str:
        return f"invalid revision range '{self.text}'"


@dataclass(frozen=True)
class ConfigFileError(RsvndumpError):
    """Raised when a YAML configuration file cannot be used."""

    path: str
    message: str = "The configuration file must contain a mapping of option names."


@dataclass(frozen=True)
class RepositoryAccessError(RsvndumpError):
    """Raised when the repository access service reports a failure."""

    operation: str
    message: str = ""

    def __str__(self) -> str:
        return f"{self.operation}: {self.message}" if self.message else self.operation


@dataclass(frozen=True)
class PathNotFoundError(RsvndumpError):
    """Raised when the dumped path does not exist in a required revision."""

    url: str
    revision: int

    def __str__(self) -> str:
        return f"URL '{self.url}' not found in revision {self.revision}"


@dataclass(frozen=True)
class SvnCommandError(RepositoryAccessError):
    """Raised when an svn command fails."""

    command: str = ""
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"`{self.command}` exited with {self.returncode}: {detail}"


@dataclass(frozen=True)
class DiffFailedError(RepositoryAccessError):
    """Raised when a tree diff between two revisions cannot be completed."""

    base: int = 0
    target: int = 0


@dataclass(frozen=True)
class EditAbortedError(RsvndumpError):
    """Raised when the tree-edit stream of a revision was aborted."""

    revision: int

    def __str__(self) -> str:
        return f"edit of revision {self.revision} was aborted"


@dataclass(frozen=True)
class NodeAlreadyEmittedError(RsvndumpError):
    """Raised when a node record would be written a second time."""

    path: str

    def __str__(self) -> str:
        return f"node '{self.path}' has already been written"


@dataclass(frozen=True)
class DuplicatePropertyError(RsvndumpError):
    """Raised when a property key is set twice on the same node."""

    path: str
    key: str

    def __str__(self) -> str:
        return f"property '{self.key}' set twice on '{self.path}'"


@dataclass(frozen=True)
class PropertyLengthMismatchError(RsvndumpError):
    """Raised when an encoded property block differs from its computed length."""

    expected: int
    actual: int

    def __str__(self) -> str:
        return f"property block is {self.actual} bytes, {self.expected} were declared"


@dataclass(frozen=True)
class UnknownNodeError(RsvndumpError):
    """Raised when the tree-edit stream refers to a node that is not open."""

    node_id: int

    def __str__(self) -> str:
        return f"node {self.node_id} is not open"
