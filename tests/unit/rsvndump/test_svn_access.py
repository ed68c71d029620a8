from __future__ import annotations

import io
import subprocess
from typing import TYPE_CHECKING

import pytest

from rsvndump import svn_access
from rsvndump.config import NodeKind
from rsvndump.editor import DumpEditor
from rsvndump.exceptions import DiffFailedError, RepositoryAccessError, SvnCommandError
from rsvndump.settings import Settings
from rsvndump.svn_access import SvnCommandLine

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture

URL = "svn://example.org/repo/trunk"

INFO = f"""<info>
<entry kind="dir" path="trunk" revision="42">
<url>{URL}</url>
<repository><root>svn://example.org/repo</root><uuid>6fc41ee3-uuid</uuid></repository>
<commit revision="40"><author>alice</author><date>2009-01-01T00:00:00.000000Z</date></commit>
</entry>
</info>"""

LOG = """<log>
<logentry revision="3"><author>alice</author><date>2009-01-03T00:00:00.000000Z</date><msg>third</msg></logentry>
<logentry revision="5"><date>2009-01-05T00:00:00.000000Z</date><msg></msg></logentry>
</log>"""

SUMMARY = f"""<diff><paths>
<path item="deleted" props="none" kind="file">{URL}/old.txt</path>
<path item="none" props="modified" kind="dir">{URL}/sub</path>
<path item="added" props="none" kind="file">{URL}/new.txt</path>
<path item="modified" props="none" kind="file">{URL}/deep/er/x.txt</path>
</paths></diff>"""

FILE_PROPS = """<properties><target path="new.txt">
<property name="svn:eol-style">native</property>
</target></properties>"""

DIR_PROPS = """<properties><target path="sub">
<property name="svn:ignore">*.o</property>
</target></properties>"""


def fake_svn(*args: str, binary: bool = False) -> str | bytes:  # noqa: ARG001
    match args[0]:
        case "info":
            return INFO
        case "log":
            return LOG
        case "diff":
            return SUMMARY
        case "proplist":
            return DIR_PROPS if "/sub@" in args[2] else FILE_PROPS
        case "cat":
            return b"hello\n"
    msg = f"unexpected svn call {args}"
    raise AssertionError(msg)


@pytest.fixture
def repo(mocker: MockerFixture) -> SvnCommandLine:
    client = SvnCommandLine(URL + "/", username="alice", password="secret", non_interactive=True)
    mocker.patch.object(client, "run_svn", side_effect=fake_svn)
    return client


@pytest.mark.unit
def test_info_derived_values(repo: SvnCommandLine) -> None:
    assert repo.url == URL
    assert repo.sub_path == "trunk"
    assert repo.resolve_head() == 40  # noqa: PLR2004
    assert repo.fetch_uuid() == "6fc41ee3-uuid"


@pytest.mark.unit
def test_log_entries(repo: SvnCommandLine) -> None:
    entries = repo.fetch_log_range(3, 5)

    assert [e.revision for e in entries] == [3, 5]
    assert entries[0].author == "alice"
    assert entries[0].message == "third"
    assert entries[1].author is None
    assert repo.fetch_log(3, 5).revision == 3  # noqa: PLR2004
    assert repo.detect_range(9) == (3, 9)


@pytest.mark.unit
def test_fetch_log_without_entries(repo: SvnCommandLine, mocker: MockerFixture) -> None:
    mocker.patch.object(repo, "run_svn", return_value="<log></log>")

    assert repo.fetch_log(4, 5) is None


@pytest.mark.unit
def test_detect_range_without_history(repo: SvnCommandLine, mocker: MockerFixture) -> None:
    mocker.patch.object(repo, "run_svn", return_value="<log></log>")

    with pytest.raises(RepositoryAccessError, match="no history"):
        repo.detect_range(5)


@pytest.mark.unit
def test_path_exists_at_is_false_on_svn_error(repo: SvnCommandLine, mocker: MockerFixture) -> None:
    mocker.patch.object(
        repo,
        "run_svn",
        side_effect=SvnCommandError(operation="info", command="svn info", returncode=1, stderr="E170000"),
    )

    assert repo.path_exists_at("", 3) is False


@pytest.mark.unit
def test_run_svn_raises_and_masks_password(mocker: MockerFixture) -> None:
    client = SvnCommandLine(URL, username="alice", password="secret")
    completed = subprocess.CompletedProcess(args=[], returncode=1, stdout=b"", stderr=b"svn: E170013: boom")
    run = mocker.patch.object(svn_access.subprocess, "run", return_value=completed)

    with pytest.raises(SvnCommandError) as exc_info:
        client.run_svn("info", URL)

    assert exc_info.value.returncode == 1
    assert "secret" not in exc_info.value.command
    assert "E170013" in str(exc_info.value)
    cmd = run.call_args.args[0]
    assert cmd[:3] == ["svn", "info", URL]
    assert "--username" in cmd


@pytest.mark.unit
def test_reparent_to_single_file(mocker: MockerFixture) -> None:
    client = SvnCommandLine(URL + "/a.txt")
    run = mocker.patch.object(client, "run_svn", return_value='<info><entry kind="file"/></info>')

    assert client.reparent_to_path("trunk/a.txt", 3) is True
    entries = client.changed_entries(3, 3)

    assert entries == [("a.txt", NodeKind.FILE, "added", True)]
    assert run.call_args.args[:2] == ("list", f"{URL}/a.txt@3")


@pytest.mark.unit
def test_reparent_keeps_directories(repo: SvnCommandLine) -> None:
    assert repo.reparent_to_path("trunk", 3) is False


@pytest.mark.unit
def test_tree_diff_drives_editor(repo: SvnCommandLine, tmp_path: Path) -> None:
    out = io.BytesIO()
    with DumpEditor(out, Settings(url=URL), scratch_dir=tmp_path) as editor:
        repo.run_tree_diff(4, 5, editor)

    dump = out.getvalue()
    assert dump.count(b"Node-path: ") == 4  # noqa: PLR2004
    assert b"Node-path: deep\n" not in dump
    assert b"Node-path: deep/er\n" not in dump
    assert (
        b"Node-path: deep/er/x.txt\nNode-kind: file\nNode-action: change\n"
        b"Text-content-length: 6\nContent-length: 6\n\nhello\n\n\n"
    ) in dump
    assert (
        b"Node-path: new.txt\nNode-kind: file\nNode-action: add\n"
        b"Prop-content-length: 40\nText-content-length: 6\nContent-length: 46\n\n"
    ) in dump
    assert b"Node-path: old.txt\nNode-action: delete\n\n\n" in dump
    assert (
        b"Node-path: sub\nNode-kind: dir\nNode-action: change\n"
        b"Prop-content-length: 34\nContent-length: 34\n\nK 10\nsvn:ignore\nV 3\n*.o\nPROPS-END\n\n\n"
    ) in dump
    assert editor.closed


@pytest.mark.unit
def test_full_tree_when_base_equals_target(mocker: MockerFixture) -> None:
    client = SvnCommandLine(URL)
    listing = """<lists><list path="x">
<entry kind="dir"><name>src</name></entry>
<entry kind="file"><name>src/main.c</name></entry>
</list></lists>"""
    mocker.patch.object(client, "run_svn", return_value=listing)

    entries = client.changed_entries(1, 1)

    assert [(e.path, e.kind, e.item) for e in entries] == [
        ("src", NodeKind.DIR, "added"),
        ("src/main.c", NodeKind.FILE, "added"),
    ]


@pytest.mark.unit
def test_tree_diff_failure_aborts_sink(repo: SvnCommandLine, mocker: MockerFixture) -> None:
    mocker.patch.object(
        repo,
        "run_svn",
        side_effect=SvnCommandError(operation="diff", command="svn diff", returncode=1, stderr="E175002"),
    )
    sink = mocker.MagicMock()

    with pytest.raises(DiffFailedError) as exc_info:
        repo.run_tree_diff(4, 5, sink)

    sink.abort.assert_called_once()
    assert exc_info.value.base == 4  # noqa: PLR2004
    assert exc_info.value.target == 5  # noqa: PLR2004


def dropped_property_svn(*args: str, binary: bool = False) -> str:  # noqa: ARG001
    """a.txt loses its only property between r4 and r5."""
    match args[0]:
        case "diff":
            return f'<diff><paths><path item="none" props="modified" kind="file">{URL}/a.txt</path></paths></diff>'
        case "proplist":
            return "<properties/>" if args[2].endswith("@5") else FILE_PROPS
    msg = f"unexpected svn call {args}"
    raise AssertionError(msg)


@pytest.mark.unit
def test_removed_last_property_writes_empty_block(mocker: MockerFixture, tmp_path: Path) -> None:
    client = SvnCommandLine(URL)
    mocker.patch.object(client, "run_svn", side_effect=dropped_property_svn)
    out = io.BytesIO()

    with DumpEditor(out, Settings(url=URL), scratch_dir=tmp_path) as editor:
        client.run_tree_diff(4, 5, editor)

    assert out.getvalue() == (
        b"Node-path: a.txt\nNode-kind: file\nNode-action: change\n"
        b"Prop-content-length: 10\nContent-length: 10\n\nPROPS-END\n\n\n"
    )


@pytest.mark.unit
def test_removed_property_is_a_deletion_in_delta_dumps(mocker: MockerFixture, tmp_path: Path) -> None:
    client = SvnCommandLine(URL)
    mocker.patch.object(client, "run_svn", side_effect=dropped_property_svn)
    out = io.BytesIO()

    with DumpEditor(out, Settings(url=URL, use_deltas=True), scratch_dir=tmp_path) as editor:
        client.run_tree_diff(4, 5, editor)

    assert out.getvalue() == (
        b"Node-path: a.txt\nNode-kind: file\nNode-action: change\nProp-delta: true\n"
        b"Prop-content-length: 29\nContent-length: 29\n\nD 13\nsvn:eol-style\nPROPS-END\n\n\n"
    )


@pytest.mark.unit
def test_added_node_does_not_look_at_base_properties(repo: SvnCommandLine, tmp_path: Path) -> None:
    with DumpEditor(io.BytesIO(), Settings(url=URL), scratch_dir=tmp_path) as editor:
        repo.run_tree_diff(4, 5, editor)

    proplists = [c.args[2] for c in repo.run_svn.call_args_list if c.args[0] == "proplist"]
    assert proplists == [f"{URL}/new.txt@5", f"{URL}/sub@5", f"{URL}/sub@4"]
