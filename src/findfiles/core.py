from __future__ import annotations

import os
import stat
import sys
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .patterns import PatternChain
from .timeselect import TimeCriterion
from .timevalue import TimeValue

PROG = "findfiles"


def eprint(*args: Any, **kwargs: Any) -> None:
    print(*args, file=sys.stderr, **kwargs)


@dataclass
class Diagnostics:
    verbosity: int = 0
    quiet: bool = False
    had_errors: bool = False

    def warn(self, msg: str) -> None:
        self.had_errors = True
        if not self.quiet:
            eprint(f"{PROG}: {msg}")

    def advise(self, msg: str) -> None:
        if not self.quiet:
            eprint(f"{PROG}: warning: {msg}")

    def debug(self, level: int, msg: str) -> None:
        if self.verbosity >= level:
            eprint(f"{PROG}: {msg}")


# ------------------------- Options -------------------------


@dataclass(frozen=True)
class SearchOptions:
    files: bool = False
    directories: bool = False
    others: bool = False
    recursive: bool = False
    follow_symlinks: bool = False
    max_depth: int | None = None
    ignore_case: bool = False
    patterns: PatternChain = field(default_factory=PatternChain)
    criterion: TimeCriterion = field(default_factory=TimeCriterion)

    @property
    def any_type(self) -> bool:
        return self.files or self.directories or self.others


@dataclass(frozen=True)
class Target:
    path: str
    options: SearchOptions


# ------------------------- File system access -------------------------


class FileSystem(Protocol):
    def lstat(self, path: str) -> os.stat_result: ...

    def stat(self, path: str) -> os.stat_result: ...

    def listdir(self, path: str) -> Iterable[str]: ...


class OsFileSystem:
    def lstat(self, path: str) -> os.stat_result:
        return os.lstat(path)

    def stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def listdir(self, path: str) -> Iterator[str]:
        with os.scandir(path) as it:
            for entry in it:
                yield entry.name


class Kind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@dataclass(frozen=True)
class Classified:
    path: str
    kind: Kind
    st: os.stat_result


def strip_trailing_separators(path: str) -> str:
    stripped = path.rstrip(os.sep)
    return stripped or (os.sep if path else path)


def classify_path(
    path: str, depth: int, follow_symlinks: bool, fs: FileSystem
) -> Classified:
    # Top-level targets lose their trailing separators before any stat call;
    # a literal trailing separator on a symlink still asks for the link to be
    # resolved, the way "ls link/" does.
    resolve_link = follow_symlinks
    if depth == 0:
        stripped = strip_trailing_separators(path)
        resolve_link = resolve_link or (stripped != path and path.endswith(os.sep))
        path = stripped

    st = fs.lstat(path)
    mode = st.st_mode
    if stat.S_ISLNK(mode):
        if resolve_link:
            try:
                target = fs.stat(path)
            except OSError:
                return Classified(path, Kind.OTHER, st)
            if stat.S_ISDIR(target.st_mode):
                return Classified(path, Kind.DIRECTORY, target)
            if follow_symlinks and stat.S_ISREG(target.st_mode):
                return Classified(path, Kind.FILE, target)
        return Classified(path, Kind.OTHER, st)
    if stat.S_ISREG(mode):
        return Classified(path, Kind.FILE, st)
    if stat.S_ISDIR(mode):
        return Classified(path, Kind.DIRECTORY, st)
    return Classified(path, Kind.OTHER, st)


def object_name(path: str) -> str:
    head, sep, tail = path.rpartition(os.sep)
    return tail if sep and tail else path


# ------------------------- Records -------------------------


@dataclass(frozen=True)
class ObjectRecord:
    path: str
    time_s: int
    time_ns: int
    size: int

    @property
    def time(self) -> TimeValue:
        return TimeValue(self.time_s, self.time_ns)


class Collector:
    def __init__(self) -> None:
        self._records: list[ObjectRecord] = []

    def append(self, record: ObjectRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ObjectRecord]:
        return iter(self._records)

    @property
    def records(self) -> list[ObjectRecord]:
        return list(self._records)


class Selector:
    def __init__(self, options: SearchOptions) -> None:
        self.patterns = options.patterns
        self.criterion = options.criterion

    def accept(self, name: str, st: os.stat_result) -> bool:
        if not self.patterns.matches(name):
            return False
        return self.criterion.accepts(self.criterion.object_time(st))

    def record(self, path: str, st: os.stat_result) -> ObjectRecord:
        when = self.criterion.object_time(st)
        return ObjectRecord(path, when.seconds, when.nanoseconds, max(st.st_size, 0))


# ------------------------- Traversal -------------------------


@dataclass(frozen=True)
class TraversalContext:
    depth: int = 0
    max_depth: int | None = None
    follow_symlinks: bool = False
    ancestors: frozenset[tuple[int, int]] = frozenset()

    def child(self, key: tuple[int, int]) -> TraversalContext:
        return TraversalContext(
            self.depth + 1, self.max_depth, self.follow_symlinks, self.ancestors | {key}
        )


class Traverser:
    def __init__(
        self,
        options: SearchOptions,
        collector: Collector,
        diagnostics: Diagnostics,
        fs: FileSystem | None = None,
    ) -> None:
        self.options = options
        self.collector = collector
        self.diag = diagnostics
        self.fs = fs if fs is not None else OsFileSystem()
        self.selector = Selector(options)

    def run(self, path: str) -> None:
        ctx = TraversalContext(0, self.options.max_depth, self.options.follow_symlinks)
        self.visit(path, ctx)

    def _enabled(self, kind: Kind) -> bool:
        if kind is Kind.FILE:
            return self.options.files
        if kind is Kind.DIRECTORY:
            return self.options.directories
        return self.options.others

    def _descends(self, ctx: TraversalContext) -> bool:
        if ctx.depth == 0:
            return True
        if not self.options.recursive:
            return False
        return ctx.max_depth is None or ctx.depth < ctx.max_depth

    def visit(self, path: str, ctx: TraversalContext) -> None:
        try:
            obj = classify_path(path, ctx.depth, ctx.follow_symlinks, self.fs)
        except OSError as e:
            self.diag.warn(f"cannot access '{path}': {e.strerror}")
            return

        if self._enabled(obj.kind) and self.selector.accept(object_name(obj.path), obj.st):
            self.collector.append(self.selector.record(obj.path, obj.st))

        if obj.kind is not Kind.DIRECTORY:
            return
        if not self._descends(ctx):
            if self.options.recursive:
                self.diag.debug(2, f"depth limit {ctx.max_depth} reached at '{obj.path}'")
            return

        key = (obj.st.st_dev, obj.st.st_ino)
        if key in ctx.ancestors:
            self.diag.warn(f"file system loop detected at '{obj.path}'")
            return
        self._descend(obj.path, ctx.child(key))

    def _descend(self, path: str, ctx: TraversalContext) -> None:
        try:
            names = list(self.fs.listdir(path))
        except OSError as e:
            self.diag.warn(f"cannot read directory '{path}': {e.strerror}")
            return

        for name in names:
            if name in (".", ".."):
                continue
            child = os.path.join(path, name)
            try:
                self.visit(child, ctx)
            except RecursionError:
                self.diag.warn(f"directory tree too deep, not descending below '{child}'")


def search(
    targets: Sequence[Target],
    diagnostics: Diagnostics,
    fs: FileSystem | None = None,
) -> Collector:
    collector = Collector()
    for target in targets:
        if not target.options.any_type:
            diagnostics.warn(f"no object types requested for '{target.path}'")
            continue
        diagnostics.debug(2, f"searching '{target.path}' with {describe_options(target.options)}")
        Traverser(target.options, collector, diagnostics, fs).run(target.path)
    return collector


def describe_options(options: SearchOptions) -> str:
    types = "".join(
        flag for flag, on in (("f", options.files), ("d", options.directories), ("o", options.others)) if on
    )
    parts = [f"types={types}", f"patterns={len(options.patterns)}"]
    if options.recursive:
        parts.append("recursive")
    if options.max_depth is not None:
        parts.append(f"max_depth={options.max_depth}")
    if options.follow_symlinks:
        parts.append("follow")
    crit = options.criterion
    if crit.active:
        field_name = "atime" if crit.use_access_time else "mtime"
        parts.append(f"{field_name} {crit.direction.value} than {crit.target}")
    return " ".join(parts)
