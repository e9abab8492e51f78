from __future__ import annotations

import getopt
import os
import shlex
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

from .core import PROG, Diagnostics, SearchOptions, Target, eprint, search
from .patterns import MatchRule, Polarity
from .report import DisplayOptions, write_report
from .timeselect import DEFAULT_TIME_FORMAT, decode, describe_format, reference_time
from .timevalue import TimeValue, parse_time_value

VERSION = f"{PROG} 1.0.0"

OPTIONS_ENV = "FINDFILES_OPTIONS"
NOW_ENV = "FINDFILES_NOW"

SHORT_OPTS = "dforilD:a:m:A:M:p:P:x:X:T:t:hVsnuvRHkq"
LONG_OPTS = [
    "directories",
    "files",
    "others",
    "recursive",
    "ignore-case",
    "follow-symlinks",
    "max-depth=",
    "acc-age=",
    "mod-age=",
    "acc-ref=",
    "mod-ref=",
    "pattern=",
    "add-pattern=",
    "exclude=",
    "add-exclude=",
    "time-format=",
    "target=",
    "help",
    "version",
    "seconds",
    "nanoseconds",
    "units",
    "verbose",
    "reverse",
    "human",
    "si",
    "quiet",
]

USAGE = f"""\
usage: {PROG} [-dforilhVsnuvRHkq] [-D <depth>] [-a|-m <age>|<timestamp>] [-A|-M <path>]
                 [-p|-P|-x|-X <ERE>] [-T <format>] <target> ...

Options are parsed left to right; each target is searched with the options
given before it.

Toggles (each occurrence flips the setting):
  -d, --directories       select directories              (default off)
  -f, --files             select regular files            (default off)
  -o, --others            select other objects            (default off)
  -r, --recursive         descend into sub-directories    (default off)
  -i, --ignore-case       case-insensitive patterns; applies to later -p/-P/-x/-X
  -l, --follow-symlinks   follow symbolic links           (default off)

Selection:
  -D, --max-depth N       descend at most N levels below a target
  -a, --acc-age AGE       select by last access time
  -m, --mod-age AGE       select by last modification time
      AGE is [-|+]<number><unit>: -3h is "3 hours old or younger",
      3h or +3h is "3 hours old or older"; 0s matches any time.
      AGE may also be an absolute timestamp [-|+]<{describe_format(DEFAULT_TIME_FORMAT)}>[.fraction]:
      -<timestamp> is "at or before", <timestamp> or +<timestamp> "at or after".
  -A, --acc-ref [-|+]PATH accessed strictly before (-) or after (+) PATH was
  -M, --mod-ref [-|+]PATH modified strictly before (-) or after (+) PATH was
  -p, --pattern ERE       names must match ERE (starts a new pattern chain)
  -P, --add-pattern ERE   names must also match ERE
  -x, --exclude ERE       names must not match ERE (starts a new pattern chain)
  -X, --add-exclude ERE   names must also not match ERE
  -T, --time-format FMT   strptime/strftime format for timestamps
                          (default {DEFAULT_TIME_FORMAT})

Output (global, the last occurrence wins):
  -v, --verbose           show time, age and size (repeat for diagnostics)
  -s, --seconds           show ages in seconds (default D_hh:mm:ss)
  -n, --nanoseconds       show sub-second digits of times and ages
  -u, --units             show units: s for seconds, B for bytes
  -H, --human             human-readable sizes, powers of 1024
  -k, --si                human-readable sizes, powers of 1000
  -R, --reverse           reverse the (oldest first) time order
  -q, --quiet             do not print warnings
  -h, --help              show this message and exit
  -V, --version           show the version and exit

Time units:
  s seconds  m minutes  h hours  D days  W weeks (7D)  M months  Y years

Environment:
  {OPTIONS_ENV}   options parsed before the command line
  {NOW_ENV}       start time as SECONDS[.FRACTION] since the epoch

Examples:
  {PROG} -f -m 1D -p '\\.ant$' /tmp    files in /tmp ending in '.ant' modified >= 1 day ago
  {PROG} -fip a /tmp -ip b /var       files named /tmp/*a*, /tmp/*A* or /var/*b*
  {PROG} -rfa -3h src                 files in the src tree accessed <= 3 hours ago
  {PROG} -rfM /etc/hosts /lib         files in the /lib tree modified after /etc/hosts
"""


@dataclass
class Invocation:
    targets: list[Target] = field(default_factory=list)
    options: SearchOptions = field(default_factory=SearchOptions)
    display: DisplayOptions = field(default_factory=DisplayOptions)
    show_help: bool = False
    show_version: bool = False


def _parse_depth(value: str) -> int:
    try:
        depth = int(value)
    except ValueError:
        raise ValueError(f"invalid max depth '{value}'") from None
    if depth < 0:
        raise ValueError(f"invalid max depth '{value}'")
    return depth


def _apply(inv: Invocation, opt: str, value: str, start: TimeValue, diag: Diagnostics) -> None:
    opts = inv.options
    display = inv.display

    if opt in ("-d", "--directories"):
        inv.options = replace(opts, directories=not opts.directories)
    elif opt in ("-f", "--files"):
        inv.options = replace(opts, files=not opts.files)
    elif opt in ("-o", "--others"):
        inv.options = replace(opts, others=not opts.others)
    elif opt in ("-r", "--recursive"):
        inv.options = replace(opts, recursive=not opts.recursive)
    elif opt in ("-i", "--ignore-case"):
        inv.options = replace(opts, ignore_case=not opts.ignore_case)
    elif opt in ("-l", "--follow-symlinks"):
        inv.options = replace(opts, follow_symlinks=not opts.follow_symlinks)
    elif opt in ("-D", "--max-depth"):
        inv.options = replace(opts, max_depth=_parse_depth(value))
    elif opt in ("-a", "--acc-age", "-m", "--mod-age"):
        criterion = decode(
            value,
            start,
            use_access_time=opt in ("-a", "--acc-age"),
            time_format=display.time_format,
            advise=diag.advise,
        )
        inv.options = replace(opts, criterion=criterion)
    elif opt in ("-A", "--acc-ref", "-M", "--mod-ref"):
        criterion = reference_time(value, use_access_time=opt in ("-A", "--acc-ref"))
        inv.options = replace(opts, criterion=criterion)
    elif opt in ("-p", "--pattern", "-x", "--exclude"):
        polarity = Polarity.INCLUDE if opt in ("-p", "--pattern") else Polarity.EXCLUDE
        rule = MatchRule.compile(value, polarity, opts.ignore_case)
        inv.options = replace(opts, patterns=opts.patterns.restart(rule))
    elif opt in ("-P", "--add-pattern", "-X", "--add-exclude"):
        polarity = Polarity.INCLUDE if opt in ("-P", "--add-pattern") else Polarity.EXCLUDE
        rule = MatchRule.compile(value, polarity, opts.ignore_case)
        inv.options = replace(opts, patterns=opts.patterns.extend(rule))
    elif opt in ("-T", "--time-format"):
        inv.display = replace(display, time_format=value)
    elif opt in ("-t", "--target"):
        inv.targets.append(Target(value, opts))
    elif opt in ("-s", "--seconds"):
        inv.display = replace(display, seconds_only=True)
    elif opt in ("-n", "--nanoseconds"):
        inv.display = replace(display, nanoseconds=True)
    elif opt in ("-u", "--units"):
        inv.display = replace(display, units=True)
    elif opt in ("-v", "--verbose"):
        inv.display = replace(display, verbosity=display.verbosity + 1)
        diag.verbosity = inv.display.verbosity
    elif opt in ("-R", "--reverse"):
        inv.display = replace(display, reverse=True)
    elif opt in ("-H", "--human"):
        inv.display = replace(display, human=1024)
    elif opt in ("-k", "--si"):
        inv.display = replace(display, human=1000)
    elif opt in ("-q", "--quiet"):
        diag.quiet = True
    elif opt in ("-h", "--help"):
        inv.show_help = True
    elif opt in ("-V", "--version"):
        inv.show_version = True


def parse_args(argv: Sequence[str], start: TimeValue, diag: Diagnostics) -> Invocation:
    inv = Invocation()
    args = list(argv)
    while args:
        try:
            pairs, rest = getopt.getopt(args, SHORT_OPTS, LONG_OPTS)
        except getopt.GetoptError as e:
            raise ValueError(str(e)) from None

        for opt, value in pairs:
            _apply(inv, opt, value, start, diag)
            if inv.show_help or inv.show_version:
                return inv

        # getopt swallows a "--" terminator; everything after it is a target.
        consumed = args[: len(args) - len(rest)]
        if consumed and consumed[-1] == "--" and not (pairs and pairs[-1][1] == "--"):
            inv.targets.extend(Target(path, inv.options) for path in rest)
            break

        if rest:
            inv.targets.append(Target(rest[0], inv.options))
        args = rest[1:]
    return inv


def start_time(now: TimeValue | None, environ: Mapping[str, str]) -> TimeValue:
    if now is not None:
        return now
    override = environ.get(NOW_ENV)
    if override:
        try:
            return parse_time_value(override)
        except ValueError:
            raise ValueError(f"invalid {NOW_ENV} value '{override}'") from None
    return TimeValue.now()


def main(
    argv: Sequence[str] | None = None,
    *,
    now: TimeValue | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    env = os.environ if environ is None else environ
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE)
        return 2

    diag = Diagnostics()
    try:
        args = shlex.split(env.get(OPTIONS_ENV, "")) + args
        start = start_time(now, env)
        inv = parse_args(args, start, diag)
    except ValueError as e:
        eprint(f"{PROG}: {e}")
        return 2

    if inv.show_help:
        print(USAGE)
        return 0
    if inv.show_version:
        print(VERSION)
        return 0

    targets = inv.targets or [Target(".", inv.options)]
    try:
        collector = search(targets, diag)
    except MemoryError:
        eprint(f"{PROG}: out of memory while collecting results")
        return 2

    write_report(collector, start, inv.display)
    return 1 if diag.had_errors else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
