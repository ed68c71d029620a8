"""Repository access through the `svn` command line client."""

from __future__ import annotations

import posixpath
import subprocess  # noqa: S404
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import quote, unquote
from xml.etree import ElementTree

from rsvndump.config import NodeKind, RevisionMetadata
from rsvndump.exceptions import DiffFailedError, RepositoryAccessError, SvnCommandError
from rsvndump.logging import logger

if TYPE_CHECKING:
    from rsvndump.repository import TreeEditSink


class DiffEntry(NamedTuple):
    """One changed path reported by `svn diff --summarize` or `svn list`."""

    path: str
    kind: NodeKind
    item: str
    props_changed: bool


def _is_below(path: str, directory: str) -> bool:
    return not directory or path.startswith(directory + "/")


def _path_key(entry: DiffEntry) -> list[str]:
    return entry.path.split("/")


class SvnCommandLine:
    """`RepositoryAccess` implementation shelling out to `svn`.

    All paths handed to the tree-edit sink are relative to the dumped URL, or to its
    parent directory when the URL points at a single file.
    """

    def __init__(
        self,
        url: str,
        *,
        username: str = "",
        password: str = "",
        no_auth_cache: bool = False,
        non_interactive: bool = False,
        svn_bin: str = "svn",
    ) -> None:
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.no_auth_cache = no_auth_cache
        self.non_interactive = non_interactive
        self.svn_bin = svn_bin
        self._diff_url = self.url
        self._file_name: str | None = None
        self._info: ElementTree.Element | None = None

    def _auth_args(self) -> list[str]:
        args: list[str] = []
        if self.username:
            args += ["--username", self.username]
        if self.password:
            args += ["--password", self.password]
        if self.no_auth_cache:
            args.append("--no-auth-cache")
        if self.non_interactive:
            args.append("--non-interactive")
        return args

    def run_svn(self, *args: str, binary: bool = False) -> str | bytes:
        """Run an svn sub-command and return its standard output.

        Args:
            *args (str): the sub-command and its arguments
            binary (bool): return raw bytes instead of decoded text

        Raises:
            SvnCommandError: if svn cannot be started or exits with a non-zero status

        Returns:
            str | bytes: the standard output of the command
        """
        cmd = [self.svn_bin, *args, *self._auth_args()]
        shown = " ".join("***" if self.password and a == self.password else a for a in cmd)
        logger.debug("running svn", command=shown)
        try:
            proc = subprocess.run(cmd, capture_output=True, check=False)  # noqa: S603
        except OSError as e:
            raise SvnCommandError(operation=args[0], command=shown, returncode=-1, stderr=str(e)) from e
        if proc.returncode != 0:
            raise SvnCommandError(
                operation=args[0],
                command=shown,
                returncode=proc.returncode,
                stdout=proc.stdout.decode("utf-8", errors="replace"),
                stderr=proc.stderr.decode("utf-8", errors="replace"),
            )
        return proc.stdout if binary else proc.stdout.decode("utf-8")

    def _xml(self, *args: str) -> ElementTree.Element:
        out = self.run_svn(*args, "--xml", binary=True)
        try:
            return ElementTree.fromstring(out)
        except ElementTree.ParseError as e:
            raise RepositoryAccessError(operation=args[0], message=f"unreadable XML output: {e}") from e

    def _url(self, base: str, path: str, revision: int | None = None) -> str:
        url = f"{base}/{quote(path)}" if path else base
        return url if revision is None else f"{url}@{revision}"

    def info(self) -> ElementTree.Element:
        """The `svn info` entry of the dumped URL at HEAD, fetched once."""
        if self._info is None:
            entry = self._xml("info", self.url).find("entry")
            if entry is None:
                raise RepositoryAccessError(operation="info", message=f"no entry for {self.url}")
            self._info = entry
        return self._info

    @property
    def sub_path(self) -> str:
        root = self.info().findtext("repository/root", default="").rstrip("/")
        if not root or not self.url.startswith(root):
            return ""
        return unquote(self.url[len(root) :]).strip("/")

    def resolve_head(self) -> int:
        commit = self.info().find("commit")
        if commit is None or commit.get("revision") is None:
            raise RepositoryAccessError(operation="info", message=f"no last changed revision for {self.url}")
        return int(commit.get("revision", "0"))

    def path_exists_at(self, path: str, revision: int) -> bool:
        try:
            self.run_svn("info", self._url(self.url, path, revision))
        except SvnCommandError as e:
            logger.debug("path missing", path=path, revision=revision, error=e.stderr.strip())
            return False
        return True

    def fetch_uuid(self) -> str:
        uuid = self.info().findtext("repository/uuid")
        if not uuid:
            raise RepositoryAccessError(operation="info", message="repository UUID is not available")
        return uuid

    def _log(self, start: int, end: int, limit: int | None = None) -> list[RevisionMetadata]:
        args = ["log", "-r", f"{start}:{end}"]
        if limit is not None:
            args += ["--limit", str(limit)]
        root = self._xml(*args, self._url(self.url, "", end))
        return [
            RevisionMetadata(
                revision=int(entry.get("revision", "0")),
                author=entry.findtext("author"),
                date=entry.findtext("date"),
                message=entry.findtext("msg"),
            )
            for entry in root.iter("logentry")
        ]

    def detect_range(self, end: int) -> tuple[int, int]:
        first = self._log(0, end, limit=1)
        if not first:
            raise RepositoryAccessError(operation="log", message=f"no history for {self.url} up to {end}")
        return first[0].revision, end

    def fetch_log_range(self, start: int, end: int) -> list[RevisionMetadata]:
        return self._log(start, end)

    def fetch_log(self, revision: int, end: int) -> RevisionMetadata | None:
        entries = self._log(revision, end, limit=1)
        if not entries:
            logger.debug("no revision left", start=revision, end=end)
            return None
        return entries[0]

    def reparent_to_path(self, path: str, revision: int) -> bool:
        entry = self._xml("info", self._url(self.url, "", revision)).find("entry")
        if entry is None or entry.get("kind") != "file":
            return False
        self._file_name = posixpath.basename(self.url)
        self._diff_url = posixpath.dirname(self.url)
        logger.info("dumping a single file", path=path, directory=self._diff_url)
        return True

    def _scope_url(self) -> str:
        return self._url(self._diff_url, self._file_name) if self._file_name else self._diff_url

    def _relative(self, text: str) -> str:
        text = text.strip()
        prefix = self._diff_url + "/"
        if text.startswith(prefix):
            return unquote(text[len(prefix) :])
        if text == self._diff_url:
            return ""
        return unquote(text).strip("/")

    def changed_entries(self, base: int, target: int) -> list[DiffEntry]:
        """List the paths that differ between `base` and `target`.

        A diff of a revision against itself lists the whole tree as added.
        """
        scope = self._scope_url()
        entries: list[DiffEntry] = []
        if base == target:
            args = ["list", f"{scope}@{target}"] if self._file_name else ["list", "-R", f"{scope}@{target}"]
            for entry in self._xml(*args).iter("entry"):
                name = entry.findtext("name", default="")
                if self._file_name:
                    name = self._file_name
                entries.append(DiffEntry(name, NodeKind(entry.get("kind", "file")), "added", True))
        else:
            root = self._xml("diff", "--summarize", f"--old={scope}@{base}", f"--new={scope}@{target}")
            for path in root.iter("path"):
                rel = self._relative(path.text or "")
                if not rel:
                    if not self._file_name:
                        continue
                    rel = self._file_name
                entries.append(
                    DiffEntry(
                        rel,
                        NodeKind(path.get("kind", "file")),
                        path.get("item", "none"),
                        path.get("props", "none") == "modified",
                    ),
                )
        return sorted(entries, key=_path_key)

    def properties(self, path: str, revision: int) -> dict[str, str]:
        root = self._xml("proplist", "-v", self._url(self._diff_url, path, revision))
        return {prop.get("name", ""): prop.text or "" for prop in root.iter("property")}

    def _send_properties(
        self,
        entry: DiffEntry,
        node_id: int,
        base: int,
        target: int,
        sink: TreeEditSink,
    ) -> None:
        """Send the full property list of `entry` at `target`.

        For a changed node, properties it had at `base` and lost since then are
        sent with a None value so that their removal reaches the dump.
        """
        props = self.properties(entry.path, target)
        for key, value in props.items():
            sink.change_property(node_id, key, value)
        if entry.item in {"added", "replaced"}:
            return
        for key in self.properties(entry.path, base):
            if key not in props:
                sink.change_property(node_id, key, None)

    def run_tree_diff(self, base: int, target: int, sink: TreeEditSink) -> None:
        try:
            self._drive(self.changed_entries(base, target), base, target, sink)
        except RepositoryAccessError as e:
            sink.abort()
            raise DiffFailedError(operation="diff", message=str(e), base=base, target=target) from e

    def _drive(self, entries: list[DiffEntry], base: int, target: int, sink: TreeEditSink) -> None:
        root_id = sink.open_root()
        stack: list[tuple[str, int]] = [("", root_id)]
        deleted: list[str] = []
        for entry in entries:
            if any(_is_below(entry.path, d) for d in deleted):
                continue
            while len(stack) > 1 and not _is_below(entry.path, stack[-1][0]):
                sink.close_node(stack.pop()[1])

            parent = posixpath.dirname(entry.path)
            missing: list[str] = []
            while parent and parent != stack[-1][0]:
                missing.append(parent)
                parent = posixpath.dirname(parent)
            for directory in reversed(missing):
                stack.append((directory, sink.open_node(directory, stack[-1][1], NodeKind.DIR)))
            parent_id = stack[-1][1]

            if entry.item == "deleted":
                sink.delete_node(entry.path, parent_id)
                deleted.append(entry.path)
                continue
            added = entry.item in {"added", "replaced"}
            if added:
                node_id = sink.add_node(entry.path, parent_id, entry.kind, replace=entry.item == "replaced")
            else:
                node_id = sink.open_node(entry.path, parent_id, entry.kind)
            if added or entry.props_changed:
                self._send_properties(entry, node_id, base, target, sink)

            if entry.kind is NodeKind.DIR:
                stack.append((entry.path, node_id))
                continue
            if entry.item in {"added", "modified", "replaced"}:
                sink.apply_content(node_id).write(
                    self.run_svn("cat", self._url(self._diff_url, entry.path, target), binary=True),
                )
            sink.close_node(node_id)

        while stack:
            sink.close_node(stack.pop()[1])
        sink.close_edit()
