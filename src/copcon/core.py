"""
Core logic for copcon package.
"""

from __future__ import annotations

import mimetypes
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

import pathspec
from colorama import Fore, Style, just_fix_windows_console

just_fix_windows_console()

# Exceptions
class CopconError(Exception):
    """Base exception for copcon errors."""


class InvalidRootError(CopconError):
    """Raised when the provided root directory is invalid."""


class OutputError(CopconError):
    """Raised when the report cannot be delivered to its sink."""


# Defaults & helpers
DEFAULT_IGNORE_DIRS: Tuple[str, ...] = (
    "__pycache__",
    ".venv",
    "node_modules",
    ".git",
    ".idea",
    ".vscode",
    "build",
    "dist",
    "target",
    ".vs",
    "bin",
    "obj",
    "publish",
)
DEFAULT_IGNORE_FILES: Tuple[str, ...] = (
    "poetry.lock",
    "package-lock.json",
    "Cargo.lock",
    ".DS_Store",
    "yarn.lock",
)
TEXT_EXTENSIONS: Tuple[str, ...] = (
    ".js",
    ".json",
    ".txt",
    ".md",
    ".html",
    ".css",
    ".xml",
    ".yml",
    ".yaml",
)
# pinned so classification does not depend on the host's mime.types
TEXT_MIME_TYPES: Tuple[Tuple[str, str], ...] = (
    (".log", "text/plain"),
    (".ini", "text/plain"),
    (".conf", "text/plain"),
    (".cfg", "text/plain"),
    (".toml", "text/plain"),
    (".csv", "text/csv"),
    (".md", "text/markdown"),
    (".yaml", "text/yaml"),
    (".yml", "text/yaml"),
)
GLOB_CHARS = "*?["
IGNORE_FILE_NAME = ".copconignore"
TEXT_ENCODING = "utf-8"
SEPARATOR = "-" * 40
HIDDEN_MARKER = "."

BRANCH = "├── "
CORNER = "└── "
PIPE = "│   "
BLANK = "    "


def echo(msg: str, colour: str = "") -> None:
    """Print a ``[copcon]`` diagnostic line to stderr."""
    line = f"[copcon] {msg}"
    if colour:
        line = colour + line + Style.RESET_ALL
    print(line, file=sys.stderr)


def warn(msg: str) -> None:
    echo(msg, Fore.YELLOW)


# Ignore rules
@dataclass(frozen=True)
class IgnoreRuleSet:
    """Everything that decides visibility for one run.

    ``dir_names`` and ``file_names`` are exact basenames; ``patterns`` are
    gitignore-style lines evaluated in order (later lines win, ``!``
    re-includes).
    """

    dir_names: frozenset = field(default_factory=lambda: frozenset(DEFAULT_IGNORE_DIRS))
    file_names: frozenset = field(default_factory=lambda: frozenset(DEFAULT_IGNORE_FILES))
    patterns: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        extra_dirs: Iterable[str] = (),
        extra_files: Iterable[str] = (),
        patterns: Iterable[str] = (),
        default_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
        default_files: Iterable[str] = DEFAULT_IGNORE_FILES,
    ) -> "IgnoreRuleSet":
        return cls(
            dir_names=frozenset(default_dirs) | frozenset(extra_dirs),
            file_names=frozenset(default_files) | frozenset(extra_files),
            patterns=tuple(patterns),
        )


def parse_ignore_lines(lines: Iterable[str]) -> List[str]:
    """Drop blank lines and ``#`` comments from an ignore file."""
    kept: List[str] = []
    for ln in lines:
        ln = ln.rstrip("\r\n")
        if not ln.strip() or ln.lstrip().startswith("#"):
            continue
        kept.append(ln)
    return kept


def read_ignore_file(path: Path, verbose: bool = False) -> List[str]:
    """Return the patterns in *path*; a missing or unreadable file yields none."""
    if not path.is_file():
        return []
    try:
        with path.open("r", encoding=TEXT_ENCODING) as fh:
            patterns = parse_ignore_lines(fh)
    except (OSError, UnicodeDecodeError) as e:
        warn(f"Could not read ignore file '{path}': {e}")
        return []
    if verbose:
        echo(f"Loaded {len(patterns)} pattern(s) from {path}")
    return patterns


def find_ignore_file(root: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    """Pick the ignore file for *root*.

    An explicit path wins when it exists; otherwise ``<root>/.copconignore``
    is used if present.
    """
    if explicit is not None and explicit.is_file():
        return explicit
    default = root / IGNORE_FILE_NAME
    if default.is_file():
        return default
    return None


class PathMatcher:
    """Answers ``is_ignored`` for paths relative to the scan root."""

    def __init__(self, rules: IgnoreRuleSet) -> None:
        self.rules = rules
        self._spec = pathspec.GitIgnoreSpec.from_lines(rules.patterns)

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        rel_path = rel_path.replace("\\", "/").strip("/")
        if not rel_path:
            return False
        parts = rel_path.split("/")
        # anything beneath an ignored directory name is ignored too
        if any(part in self.rules.dir_names for part in parts[:-1]):
            return True
        name = parts[-1]
        if is_dir and name in self.rules.dir_names:
            return True
        if not is_dir and name in self.rules.file_names:
            return True
        if not self.rules.patterns:
            return False
        return self._spec.match_file(rel_path + "/" if is_dir else rel_path)


# Traversal helpers
def _is_dir(p: Path) -> bool:
    try:
        return p.is_dir()
    except OSError:
        return False


def _descend(p: Path) -> bool:
    return _is_dir(p) and not p.is_symlink()


def _relative(p: Path, root: Path) -> str:
    return p.relative_to(root).as_posix()


def _visible_children(
    directory: Path,
    root: Path,
    matcher: PathMatcher,
    verbose: bool = False,
) -> List[Tuple[Path, bool]]:
    """List, filter and sort the direct children of *directory*."""
    try:
        entries = list(directory.iterdir())
    except OSError as e:
        if verbose:
            warn(f"! Could not list {directory}: {e}")
        return []
    entries.sort(key=lambda p: p.name.casefold())
    kept: List[Tuple[Path, bool]] = []
    for p in entries:
        is_dir = _is_dir(p)
        if matcher.is_ignored(_relative(p, root), is_dir=is_dir):
            continue
        kept.append((p, is_dir))
    return kept


# project-tree renderer
def render_tree(
    root: Path,
    max_depth: int,
    matcher: PathMatcher,
    verbose: bool = False,
) -> str:
    """
    Return the ASCII tree below *root* (the root line itself is not included).

    • ``max_depth == 0`` renders nothing, a negative value is unlimited and
      ``n`` renders entries at most ``n`` levels below the root.
    • Siblings are ordered case-insensitively.
    • Uses an explicit stack, so deep trees never hit the recursion limit.
    """
    if max_depth == 0:
        return ""
    root = root.resolve()
    lines: List[str] = []

    # (path, is_dir, is_last, prefix, depth)
    stack: List[Tuple[Path, bool, bool, str, int]] = []

    def _push_children(directory: Path, prefix: str, depth: int) -> None:
        children = _visible_children(directory, root, matcher, verbose)
        n = len(children)
        for idx in range(n - 1, -1, -1):
            p, is_dir = children[idx]
            stack.append((p, is_dir, idx == n - 1, prefix, depth))

    _push_children(root, "", 1)
    while stack:
        p, is_dir, last, prefix, depth = stack.pop()
        lines.append(prefix + (CORNER if last else BRANCH) + p.name)
        if not is_dir or not _descend(p):
            continue
        if max_depth < 0 or depth < max_depth:
            _push_children(p, prefix + (BLANK if last else PIPE), depth + 1)

    return "\n".join(lines)


# Classification
class FileKind(str, Enum):
    TEXT = "text"
    BINARY = "binary"
    UNREADABLE = "unreadable"


class Classifier(Protocol):
    def classify(self, path: Path) -> FileKind: ...

    def mime_type(self, path: Path) -> Optional[str]: ...


class MimeClassifier:
    """MIME lookup first, then the extension allow-list, else binary."""

    def __init__(
        self,
        text_extensions: Iterable[str] = TEXT_EXTENSIONS,
        extra_types: Iterable[Tuple[str, str]] = TEXT_MIME_TYPES,
    ) -> None:
        self.text_extensions = frozenset(ext.lower() for ext in text_extensions)
        # private table: python's built-in defaults only, never the host's files
        self._types = mimetypes.MimeTypes()
        for ext, mime in extra_types:
            self._types.add_type(mime, ext)

    def mime_type(self, path: Path) -> Optional[str]:
        mime, _ = self._types.guess_type(path.name)
        return mime

    def classify(self, path: Path) -> FileKind:
        mime = self.mime_type(path)
        if mime and mime.split("/", 1)[0] == "text":
            return FileKind.TEXT
        if path.suffix.lower() in self.text_extensions:
            return FileKind.TEXT
        return FileKind.BINARY


@dataclass(frozen=True)
class FileRecord:
    path: str
    size: int
    kind: FileKind
    payload: str


def read_record(
    path: Path,
    rel: str,
    classifier: Classifier,
    encoding: str = TEXT_ENCODING,
) -> FileRecord:
    """Build the :class:`FileRecord` for one file; read failures are captured."""
    try:
        size = path.stat().st_size
        if classifier.classify(path) is FileKind.TEXT:
            with path.open("r", encoding=encoding, newline="") as fh:
                return FileRecord(rel, size, FileKind.TEXT, fh.read())
        mime = classifier.mime_type(path) or "Unknown"
        summary = f"[Binary file]\nType: {mime}\nSize: {size} bytes"
        return FileRecord(rel, size, FileKind.BINARY, summary)
    except (OSError, UnicodeDecodeError) as e:
        try:
            size = path.stat().st_size
        except OSError:
            size = 0
        reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
        msg = f"Error reading file: {path}\nError: {reason}"
        return FileRecord(rel, size, FileKind.UNREADABLE, msg)


def collect_files(
    root: Path,
    matcher: PathMatcher,
    exclude_hidden: bool = True,
    classifier: Optional[Classifier] = None,
    verbose: bool = False,
) -> List[FileRecord]:
    """Walk the whole tree under *root* (no depth limit) and read every kept file."""
    root = root.resolve()
    classifier = classifier or MimeClassifier()
    records: List[FileRecord] = []

    # same pre-order as the tree: siblings by name, files and dirs interleaved
    stack: List[Tuple[Path, bool]] = list(
        reversed(_visible_children(root, root, matcher, verbose))
    )
    while stack:
        p, is_dir = stack.pop()
        if is_dir:
            if _descend(p):
                stack.extend(reversed(_visible_children(p, root, matcher, verbose)))
            continue
        if exclude_hidden and p.name.startswith(HIDDEN_MARKER):
            continue
        rel = _relative(p, root)
        record = read_record(p, rel, classifier)
        if verbose:
            if record.kind is FileKind.UNREADABLE:
                warn(f"! Could not read {rel}")
            elif record.kind is FileKind.BINARY:
                warn(f"- Binary {rel} ({record.size} bytes)")
        records.append(record)

    return records


# Report assembly
def format_record(record: FileRecord) -> str:
    return f"\nFile: {record.path}\n{SEPARATOR}\n{record.payload}\n{SEPARATOR}\n"


def assemble_report(
    root: Path,
    max_depth: int,
    rules: IgnoreRuleSet,
    exclude_hidden: bool = True,
    classifier: Optional[Classifier] = None,
    verbose: bool = False,
) -> str:
    """Render the tree section and the file-contents section into one report."""
    root = root.resolve()
    matcher = PathMatcher(rules)

    tree = render_tree(root, max_depth, matcher, verbose=verbose)
    parts: List[str] = [f"Directory Structure:\n{root.name}\n{tree}\n\nFile Contents:\n"]

    records = collect_files(
        root,
        matcher,
        exclude_hidden=exclude_hidden,
        classifier=classifier,
        verbose=verbose,
    )
    parts.extend(format_record(r) for r in records)

    if verbose:
        skipped = sum(r.kind is not FileKind.TEXT for r in records)
        echo(f"{len(records)} files collected, {skipped} binary or unreadable.")
    return "".join(parts)


def check_root(root: Path) -> Path:
    """Resolve *root* and make sure it is an existing directory."""
    try:
        root = root.resolve()
    except (OSError, RuntimeError) as e:
        raise InvalidRootError(f"Could not resolve root path '{root}': {e}")
    if not root.is_dir():
        raise InvalidRootError(f"{root} is not a valid directory.")
    return root


def build_rules(
    root: Path,
    extra_dirs: Sequence[str] = (),
    extra_files: Sequence[str] = (),
    ignore_file: Optional[Path] = None,
    use_gitignore: bool = False,
    verbose: bool = False,
) -> IgnoreRuleSet:
    """Assemble the :class:`IgnoreRuleSet` for a run rooted at *root*.

    Extra names containing glob characters become gitignore patterns (dir
    globs get a trailing ``/``); plain names stay exact basename rules.
    """
    dir_names, dir_globs = split_globs(extra_dirs)
    file_names, file_globs = split_globs(extra_files)
    patterns: List[str] = [g.rstrip("/") + "/" for g in dir_globs] + file_globs
    if use_gitignore:
        patterns.extend(read_ignore_file(root / ".gitignore", verbose=verbose))
    found = find_ignore_file(root, ignore_file)
    if found is not None:
        patterns.extend(read_ignore_file(found, verbose=verbose))
    elif verbose:
        echo("No ignore file found; using built-in rules only.")
    return IgnoreRuleSet.build(dir_names, file_names, patterns)


def split_globs(names: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split *names* into exact names and glob patterns."""
    exact: List[str] = []
    globs: List[str] = []
    for name in names:
        (globs if any(ch in name for ch in GLOB_CHARS) else exact).append(name)
    return exact, globs
