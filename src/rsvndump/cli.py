"""
rsvndump — dump the history of a remote Subversion repository.

Overview
--------
This utility writes the history of a repository path that is only reachable
through a URL into a dump file that `svnadmin load` understands. Revisions are
read one at a time through the `svn` client. Every revision is diffed against
its predecessor and written as a revision record followed by node records.

Options can also come from a YAML file (`--config`). Its keys are the long option
names with dashes replaced by underscores, and explicit flags override them.
Default credentials are read from `RSVNDUMP_USERNAME` / `RSVNDUMP_PASSWORD`,
either in the environment or in a `.env` file.

Usage
-----
Run `python -m rsvndump.cli --help` for full options. Common examples:
    - Whole history of a project directory:
        rsvndump svn://example.org/repo/project > project.dump

    - Revisions 100 to HEAD, incremental, below a new parent directory:
        rsvndump -r 100:HEAD --incremental --prefix imported/ https://example.org/svn/repo

    - Log to a file:
        rsvndump --log-file dump.log -o out.dump https://example.org/svn/repo
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import re
import sys
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from rsvndump import __version__
from rsvndump.dump import run
from rsvndump.exceptions import ConfigFileError, InvalidRevisionRangeError
from rsvndump.logging import logger, setup_logging
from rsvndump.settings import Settings, credentials_from_env
from rsvndump.svn_access import SvnCommandLine

if TYPE_CHECKING:
    from collections.abc import Sequence

HEAD = "HEAD"
_URL_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def parse_revision_range(text: str) -> tuple[int | None, int | None, bool]:
    """Parse a revision argument: ``N``, ``N:M``, ``N:HEAD`` or ``HEAD``.

    Args:
        text (str): the argument given to `--revision`

    Raises:
        InvalidRevisionRangeError: if `text` is not a valid revision or range

    Returns:
        tuple[int | None, int | None, bool]: start and end revision (None for HEAD),
            and whether only the HEAD revision was requested
    """

    def number(part: str) -> int:
        if not part.isdigit():
            raise InvalidRevisionRangeError(text=text)
        return int(part)

    start_text, sep, end_text = text.strip().partition(":")
    if not sep:
        if start_text == HEAD:
            return None, None, True
        rev = number(start_text)
        return rev, rev, False

    if start_text == HEAD:
        if end_text != HEAD:
            raise InvalidRevisionRangeError(text=text)
        return None, None, True
    start = number(start_text)
    if end_text == HEAD:
        return start, None, False
    end = number(end_text)
    if start > end:
        raise InvalidRevisionRangeError(text=text)
    return start, end, False


def _revision_arg(text: str) -> tuple[int | None, int | None, bool]:
    try:
        return parse_revision_range(text)
    except InvalidRevisionRangeError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _url_arg(text: str) -> str:
    if not _URL_PATTERN.match(text):
        msg = f"malformed url '{text}'"
        raise argparse.ArgumentTypeError(msg)
    return text


def load_config_file(path: str) -> dict[str, Any]:
    """Read option defaults from a YAML mapping.

    Args:
        path (str): the YAML file

    Raises:
        ConfigFileError: if the file cannot be read or is not a mapping

    Returns:
        dict[str, Any]: option names (underscored long options) to values
    """
    try:
        with Path(path).open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(path=path, message=str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileError(path=path)
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="rsvndump",
        description="Dump a remote Subversion repository.",
    )
    p.add_argument("url", nargs="?", type=_url_arg, default=None, help="Repository URL to dump.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--config", type=str, default="", help="YAML file with option defaults.")
    p.add_argument("-o", "--output", type=str, default="", help="Dump file (default: stdout).")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")

    noise = p.add_mutually_exclusive_group()
    noise.add_argument("-q", "--quiet", action="store_true", help="Be quiet.")
    noise.add_argument("-v", "--verbose", action="store_true", help="Print extra progress.")

    p.add_argument("-u", "--username", type=str, default="", help="Username.")
    p.add_argument("-p", "--password", type=str, default="", help="Password.")
    p.add_argument(
        "--no-auth-cache",
        action="store_true",
        help="Do not cache authentication tokens.",
    )
    p.add_argument(
        "--non-interactive",
        action="store_true",
        help="Do no interactive prompting.",
    )

    p.add_argument(
        "-r",
        "--revision",
        type=_revision_arg,
        default=None,
        help="Revision number or X:Y range (HEAD is accepted).",
    )
    p.add_argument(
        "--deltas",
        dest="use_deltas",
        action="store_true",
        help="Use deltas in dump output.",
    )
    p.add_argument("--incremental", action="store_true", help="Dump incrementally.")
    p.add_argument(
        "--prefix",
        type=str,
        default="",
        help="Prepend arg to the path that is being dumped.",
    )
    p.add_argument(
        "--keep-revnums",
        action="store_true",
        help="Keep the dumped revision numbers in sync with the repository "
        "by using empty revisions for padding.",
    )
    p.add_argument(
        "--dump-uuid",
        action="store_true",
        help="Write the repository UUID to the dump.",
    )
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = build_parser()

    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", type=str, default="")
    known, _ = pre.parse_known_args(argv)
    if known.config:
        try:
            defaults = load_config_file(known.config)
        except ConfigFileError as e:
            p.error(f"{e.path}: {e}")
        dests = {action.dest for action in p._actions}  # noqa: SLF001
        unknown = sorted(set(defaults) - dests)
        if unknown:
            p.error(f"{known.config}: unknown option(s) {', '.join(unknown)}")
        p.set_defaults(**defaults)

    args = p.parse_args(argv)
    if not args.url:
        p.error("a repository URL is required")

    values = vars(args)
    start, end, head_only = values.pop("revision") or (None, None, False)
    if not values["username"] and not values["password"]:
        values["username"], values["password"] = credentials_from_env()
    values["output"] = Path(values["output"]) if values["output"] else None
    return Settings(**values, start=start, end=end, head_only=head_only)


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    level = logging.INFO
    if settings.quiet:
        level = logging.WARNING
    elif settings.verbose:
        level = logging.DEBUG
    setup_logging(settings.log_file or None, level, force=True)

    repo = SvnCommandLine(
        settings.url,
        username=settings.username,
        password=settings.password,
        no_auth_cache=settings.no_auth_cache,
        non_interactive=settings.non_interactive,
    )

    with contextlib.ExitStack() as stack:
        if settings.output:
            out = stack.enter_context(settings.output.open("wb"))
        else:
            out = sys.stdout.buffer
        settings.scratch_dir = Path(stack.enter_context(tempfile.TemporaryDirectory(prefix="rsvndump")))
        ok = run(settings, repo, out)
        out.flush()

    if not ok:
        return 1
    logger.info("dump finished", start=settings.start, end=settings.end, output=str(settings.output or "-"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
