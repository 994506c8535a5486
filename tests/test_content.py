# tests/test_content.py
import os
import stat
from pathlib import Path

import pytest

from copcon.core import (
    FileKind,
    IgnoreRuleSet,
    MimeClassifier,
    PathMatcher,
    collect_files,
    read_record,
)


def _make_file(p: Path, content: str = "x"):
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")


def _collect(root: Path, *patterns, **kw):
    matcher = PathMatcher(IgnoreRuleSet.build(patterns=patterns))
    return collect_files(root, matcher, **kw)


def test_text_payload_is_verbatim(tmp_path: Path):
    _make_file(tmp_path / "a.txt", "hello")
    (tmp_path / "crlf.md").write_bytes(b"line1\r\nline2\r\n")

    records = {r.path: r for r in _collect(tmp_path)}
    assert records["a.txt"].kind is FileKind.TEXT
    assert records["a.txt"].payload == "hello"
    assert records["a.txt"].size == 5
    assert records["crlf.md"].payload == "line1\r\nline2\r\n"


def test_binary_payload_is_summary(tmp_path: Path):
    raw = bytes([0, 255, 1, 254, 2, 253, 3, 252, 4, 251])
    (tmp_path / "b.bin").write_bytes(raw)

    (record,) = _collect(tmp_path)
    assert record.kind is FileKind.BINARY
    assert record.payload.startswith("[Binary file]\nType: ")
    assert record.payload.endswith("\nSize: 10 bytes")
    assert "\x00" not in record.payload


def test_unknown_type_reported(tmp_path: Path):
    (tmp_path / "blob.zzqq").write_bytes(b"\x00\x01")

    (record,) = _collect(tmp_path)
    assert record.payload == "[Binary file]\nType: Unknown\nSize: 2 bytes"


@pytest.mark.parametrize(
    "name, kind",
    [
        ("notes.txt", FileKind.TEXT),
        ("main.py", FileKind.TEXT),
        ("data.json", FileKind.TEXT),
        ("app.js", FileKind.TEXT),
        ("conf.YAML", FileKind.TEXT),
        ("image.png", FileKind.BINARY),
        ("noext", FileKind.BINARY),
    ],
)
def test_classification(tmp_path: Path, name, kind):
    assert MimeClassifier().classify(tmp_path / name) is kind


def test_extension_allow_list_is_configurable(tmp_path: Path):
    clf = MimeClassifier(text_extensions=[".zzqq"])
    assert clf.classify(tmp_path / "x.zzqq") is FileKind.TEXT
    assert clf.classify(tmp_path / "x.json") is FileKind.BINARY


def test_undecodable_text_becomes_unreadable(tmp_path: Path):
    bad = tmp_path / "bad.txt"
    bad.write_bytes(b"ok\xff\xfe")
    _make_file(tmp_path / "good.txt", "fine")

    records = {r.path: r for r in _collect(tmp_path)}
    assert records["bad.txt"].kind is FileKind.UNREADABLE
    assert records["bad.txt"].payload.startswith(f"Error reading file: {bad.resolve()}\nError: ")
    assert records["good.txt"].payload == "fine"


@pytest.mark.skipif(
    os.name != "posix" or os.geteuid() == 0,
    reason="Permission bits test is POSIX-only and meaningless as root",
)
def test_permission_denied_is_captured(tmp_path: Path):
    secret = tmp_path / "secret.txt"
    _make_file(secret, "hidden")
    secret.chmod(0)
    try:
        (record,) = _collect(tmp_path)
        assert record.kind is FileKind.UNREADABLE
        assert "secret.txt" in record.payload
        assert "Permission denied" in record.payload
    finally:
        secret.chmod(stat.S_IRWXU)


def test_custom_classifier(tmp_path: Path):
    class AlwaysBinary:
        def classify(self, path):
            return FileKind.BINARY

        def mime_type(self, path):
            return "application/x-test"

    _make_file(tmp_path / "a.txt", "hello")
    (record,) = _collect(tmp_path, classifier=AlwaysBinary())
    assert record.payload == "[Binary file]\nType: application/x-test\nSize: 5 bytes"


def test_hidden_files_excluded_by_default(tmp_path: Path):
    _make_file(tmp_path / ".env", "SECRET=1")
    _make_file(tmp_path / "a.txt")

    assert [r.path for r in _collect(tmp_path)] == ["a.txt"]
    assert [r.path for r in _collect(tmp_path, exclude_hidden=False)] == [".env", "a.txt"]


def test_only_hidden_basename_counts(tmp_path: Path):
    _make_file(tmp_path / ".github/workflow.yml", "on: push")

    assert [r.path for r in _collect(tmp_path)] == [".github/workflow.yml"]


def test_ignored_dirs_and_files_not_collected(tmp_path: Path):
    _make_file(tmp_path / "node_modules/x.js")
    _make_file(tmp_path / "src/node_modules/y.js")
    _make_file(tmp_path / "src/yarn.lock")
    _make_file(tmp_path / "src/app.js")

    assert [r.path for r in _collect(tmp_path)] == ["src/app.js"]


def test_patterns_and_negation(tmp_path: Path):
    _make_file(tmp_path / "debug.log")
    _make_file(tmp_path / "keep.log")
    _make_file(tmp_path / "sub/trace.log")

    assert [r.path for r in _collect(tmp_path, "*.log", "!keep.log")] == ["keep.log"]


def test_preorder_case_insensitive(tmp_path: Path):
    _make_file(tmp_path / "b.txt")
    _make_file(tmp_path / "A/c.txt")
    _make_file(tmp_path / "a.txt")
    _make_file(tmp_path / "A/B/d.txt")

    assert [r.path for r in _collect(tmp_path)] == [
        "A/B/d.txt",
        "A/c.txt",
        "a.txt",
        "b.txt",
    ]


def test_no_depth_limit(tmp_path: Path):
    _make_file(tmp_path / "a/b/c/d/e.txt", "deep")

    (record,) = _collect(tmp_path)
    assert record.path == "a/b/c/d/e.txt"
    assert record.payload == "deep"


def test_read_record_directly(tmp_path: Path):
    p = tmp_path / "x.md"
    _make_file(p, "# Title")
    record = read_record(p, "x.md", MimeClassifier())
    assert (record.path, record.size, record.kind, record.payload) == (
        "x.md",
        7,
        FileKind.TEXT,
        "# Title",
    )


def test_empty_directory(tmp_path: Path):
    assert _collect(tmp_path) == []


@pytest.mark.parametrize("ext", [".log", ".ini", ".conf", ".cfg", ".toml", ".LOG"])
def test_config_and_log_files_are_text_on_any_host(tmp_path: Path, ext):
    clf = MimeClassifier()
    assert clf.mime_type(tmp_path / f"x{ext}") == "text/plain"
    assert clf.classify(tmp_path / f"x{ext}") is FileKind.TEXT


def test_embedded_log_file(tmp_path: Path):
    _make_file(tmp_path / "app.log", "started\n")

    (record,) = _collect(tmp_path)
    assert record.kind is FileKind.TEXT
    assert record.payload == "started\n"


def test_extra_mime_types(tmp_path: Path):
    clf = MimeClassifier(extra_types=[(".zzqq", "text/x-zz")])
    assert clf.mime_type(tmp_path / "x.zzqq") == "text/x-zz"
    assert clf.classify(tmp_path / "x.zzqq") is FileKind.TEXT
