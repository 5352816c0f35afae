# tests/test_gateway.py
from pathlib import Path

from chatfs.gateway import LocalFileGateway
from chatfs.models import EntryKind, GatewayError, GatewayErrorKind


def test_write_read_roundtrip_creates_parents(tmp_path: Path):
    gw = LocalFileGateway()
    target = tmp_path / "nested" / "dir" / "a.txt"
    assert gw.write(str(target), b"hello") is None
    assert gw.read(str(target)) == b"hello"
    # No temp file left behind.
    assert sorted(p.name for p in target.parent.iterdir()) == ["a.txt"]


def test_missing_paths_are_not_found(tmp_path: Path):
    gw = LocalFileGateway()
    missing = str(tmp_path / "nope")
    for result in (gw.read(missing), gw.stat(missing), gw.list(missing), gw.delete(missing)):
        assert isinstance(result, GatewayError)
        assert result.kind == GatewayErrorKind.not_found


def test_stat_and_list(tmp_path: Path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "f.txt").write_text("abc", encoding="utf-8")
    gw = LocalFileGateway()
    st = gw.stat(str(tmp_path / "f.txt"))
    assert st.kind == EntryKind.file
    assert st.size == 3
    assert st.mtime_ns > 0
    assert gw.stat(str(tmp_path / "sub")).kind == EntryKind.directory
    entries = {e.name: e.kind for e in gw.list(str(tmp_path))}
    assert entries == {"sub": EntryKind.directory, "f.txt": EntryKind.file}


def test_list_on_file_is_not_a_directory(tmp_path: Path):
    f = tmp_path / "f.txt"
    f.write_text("x", encoding="utf-8")
    result = LocalFileGateway().list(str(f))
    assert isinstance(result, GatewayError)
    assert result.kind == GatewayErrorKind.not_a_directory


def test_delete_file_and_directory_tree(tmp_path: Path):
    gw = LocalFileGateway()
    (tmp_path / "d" / "e").mkdir(parents=True)
    (tmp_path / "d" / "e" / "x.txt").write_text("x", encoding="utf-8")
    (tmp_path / "f.txt").write_text("y", encoding="utf-8")
    assert gw.delete(str(tmp_path / "f.txt")) is None
    assert gw.delete(str(tmp_path / "d")) is None
    assert list(tmp_path.iterdir()) == []


def _workspace_with_link(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("TOP SECRET", encoding="utf-8")
    (ws / "link").symlink_to(outside, target_is_directory=True)
    (ws / "inside.txt").write_text("fine", encoding="utf-8")
    return ws


def test_bound_gateway_refuses_symlinked_escapes(tmp_path: Path):
    ws = _workspace_with_link(tmp_path)
    gw = LocalFileGateway(str(ws))
    link = ws / "link"
    for result in (
        gw.read(str(link / "secret.txt")),
        gw.stat(str(link / "secret.txt")),
        gw.list(str(link)),
        gw.write(str(link / "new.txt"), b"x"),
        gw.delete(str(link / "secret.txt")),
    ):
        assert isinstance(result, GatewayError)
        assert result.kind == GatewayErrorKind.outside_root
    assert sorted(p.name for p in (tmp_path / "outside").iterdir()) == ["secret.txt"]
    assert gw.read(str(ws / "inside.txt")) == b"fine"
    assert gw.write(str(ws / "sub" / "new.txt"), b"ok") is None


def test_failed_write_leaves_no_temp_file(tmp_path: Path):
    (tmp_path / "target").mkdir()
    result = LocalFileGateway(str(tmp_path)).write(str(tmp_path / "target"), b"x")
    assert isinstance(result, GatewayError)
    assert result.kind == GatewayErrorKind.io_error
    assert [p.name for p in tmp_path.iterdir()] == ["target"]


def test_write_does_not_clobber_lookalike_temp_names(tmp_path: Path):
    lookalike = tmp_path / ".a.txt.chatfs-tmp"
    lookalike.write_text("user data", encoding="utf-8")
    assert LocalFileGateway(str(tmp_path)).write(str(tmp_path / "a.txt"), b"new") is None
    assert lookalike.read_text(encoding="utf-8") == "user data"
    assert sorted(p.name for p in tmp_path.iterdir()) == [".a.txt.chatfs-tmp", "a.txt"]
