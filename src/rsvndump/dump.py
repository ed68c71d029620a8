"""Revision-range orchestration of a dump run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rsvndump.config import DUMP_FORMAT_DELTAS, DUMP_FORMAT_FULLTEXT, PADDING_LOG_MESSAGE, RevisionMetadata
from rsvndump.editor import DumpEditor
from rsvndump.exceptions import EditAbortedError, PathNotFoundError, RsvndumpError
from rsvndump.logging import logger
from rsvndump.records import write_revision_header, write_stream_header

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path
    from typing import BinaryIO

    from rsvndump.repository import RepositoryAccess
    from rsvndump.settings import Settings


@dataclass
class _LoopState:
    start: int
    end: int
    global_revision: int
    local_revision: int
    root_is_file: bool = False
    previous_revision: int | None = None


def resolve_range(settings: Settings, repo: RepositoryAccess) -> tuple[int, int]:
    """Determine the first and last revision to dump.

    Args:
        settings (Settings): the dump options, `start` and `end` may be unresolved
        repo (RepositoryAccess): the repository access service

    Raises:
        PathNotFoundError: if the dumped path is missing from a requested boundary revision

    Returns:
        tuple[int, int]: the start and end revision
    """
    start, end = settings.start, settings.end
    if end is None:
        end = repo.resolve_head()
        if settings.head_only:
            start = end
            _check_path(repo, start)
        elif start is None:
            start, end = repo.detect_range(end)
        else:
            _check_path(repo, start)
    else:
        start = start or 0
        _check_path(repo, start)
        _check_path(repo, end)
    logger.debug("resolved revision range", start=start, end=end)
    return start, end


def _check_path(repo: RepositoryAccess, revision: int) -> None:
    if not repo.path_exists_at("", revision):
        raise PathNotFoundError(url=repo.url, revision=revision)


def diff_base(
    global_revision: int,
    *,
    start: int,
    end: int,
    sub_path: str = "",
    root_is_file: bool = False,
) -> int:
    """Revision the tree state of `global_revision` is diffed against.

    For a sub-path, the state before the first dumped revision may not contain
    the path at all, so the start revision (or, for a single file, the end
    revision) is used instead.

    Args:
        global_revision (int): the source revision being dumped
        start (int): first revision of the resolved range
        end (int): last revision of the resolved range
        sub_path (str): the dumped path below the repository root
        root_is_file (bool): whether the dumped path is a single file

    Returns:
        int: the base revision of the diff
    """
    base = max(global_revision - 1, 0)
    if sub_path and base < start:
        # TODO: a single file dumped over a revision range still diffs against the end revision here
        base = end if root_is_file else start
    return base


def dump_repository(
    settings: Settings,
    repo: RepositoryAccess,
    out: BinaryIO,
    scratch_dir: Path | None = None,
) -> None:
    """Dump the history of `repo` to `out`.

    `settings` is left untouched, the resolved range lives in the loop state.

    Args:
        settings (Settings): the dump options
        repo (RepositoryAccess): the repository access service
        out (BinaryIO): the dump stream
        scratch_dir (Path | None): directory holding buffered file content

    Raises:
        RsvndumpError: on any failure, the dump written so far must be discarded
    """
    start, end = resolve_range(settings, repo)

    root_is_file = settings.root_is_file
    if repo.sub_path:
        root_is_file = repo.reparent_to_path(repo.sub_path, start)

    prefetched: list[RevisionMetadata] | None = None
    if settings.incremental and start != 0:
        prefetched = repo.fetch_log_range(start, end)
        if prefetched:
            end = prefetched[-1].revision

    if start == 0 and repo.sub_path:
        # no sub-path exists in revision 0
        start = 1

    version = DUMP_FORMAT_DELTAS if settings.use_deltas else DUMP_FORMAT_FULLTEXT
    uuid = repo.fetch_uuid() if settings.dump_uuid else None
    write_stream_header(out, version=version, uuid=uuid)

    state = _LoopState(
        start=start,
        end=end,
        global_revision=start,
        local_revision=0 if start == 0 else 1,
        root_is_file=root_is_file,
    )
    record_settings = settings.model_copy(update={"root_is_file": root_is_file})
    for meta in _revisions(repo, state, prefetched):
        if settings.keep_revnums:
            _write_padding(out, state.global_revision, meta.revision)
        number = meta.revision if settings.keep_revnums else state.local_revision
        write_revision_header(out, meta, number)

        base = diff_base(
            state.global_revision,
            start=state.start,
            end=state.end,
            sub_path=repo.sub_path,
            root_is_file=state.root_is_file,
        )
        logger.debug("diffing revisions", base=base, target=meta.revision, previous=state.previous_revision)
        with DumpEditor(out, record_settings, scratch_dir) as editor:
            repo.run_tree_diff(base, meta.revision, editor)
            if editor.aborted:
                raise EditAbortedError(revision=meta.revision)

        logger.info("dumped revision", revision=meta.revision, number=number)
        state.previous_revision = meta.revision
        state.global_revision = meta.revision + 1
        state.local_revision += 1

    if state.previous_revision is None:
        logger.warning("no revision to dump", start=state.start, end=state.end)


def _revisions(
    repo: RepositoryAccess,
    state: _LoopState,
    prefetched: list[RevisionMetadata] | None,
) -> Iterator[RevisionMetadata]:
    if prefetched is not None:
        for meta in prefetched:
            if meta.revision >= state.global_revision:
                yield meta
        return
    while state.global_revision <= state.end:
        meta = repo.fetch_log(state.global_revision, state.end)
        if meta is None:
            # the rest of the range does not touch the dumped path
            return
        yield meta


def _write_padding(out: BinaryIO, first: int, stop: int) -> None:
    for revision in range(first, stop):
        write_revision_header(out, RevisionMetadata(revision=revision, message=PADDING_LOG_MESSAGE), revision)
        logger.info("padded revision", revision=revision)


def run(
    settings: Settings,
    repo: RepositoryAccess,
    out: BinaryIO,
    scratch_dir: Path | None = None,
) -> bool:
    """Dump `repo` to `out`, reporting failures instead of raising them.

    Returns:
        bool: True when every revision in range has been dumped
    """
    try:
        dump_repository(settings, repo, out, scratch_dir)
    except RsvndumpError as e:
        logger.error("dump failed", error=str(e), error_type=type(e).__name__)
        return False
    return True
