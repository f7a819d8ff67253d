# awaitguard/config.py
"""
Project configuration.

The configuration lives in an S-expression file named ``.awaitguard.sexp``,
looked up from the working directory towards the filesystem root::

    ; extra blocking primitives of this code base
    (awaitguard
      (blocking-paths "requests.get" "sqlite3.connect")
      (disable may-block)
      (severity may-block warning)
      (suppress may-block)
      (exclude "build/*" "*/migrations/*")
      (format human)
      (jobs 4))

Values may be written as bare symbols or as double-quoted strings.  Every
key is optional; repeating a list key appends to it.  Command-line flags
are folded in with :meth:`AwaitGuardConfig.with_overrides`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path as FsPath
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import sexpdata
from sexpdata import Symbol

from awaitguard.diagnostics import Severity
from awaitguard.errors import ConfigError
from awaitguard.lint import LintStore
from awaitguard.paths import BLOCKING_PRIMITIVES, BlockingPrimitiveRegistry
from awaitguard.suppressions import SuppressionManager
from awaitguard.ty import Path, parse_path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".awaitguard.sexp"
FORMATS = ("human", "gcc", "json", "sarif")


def parse_sexp(text: str, origin: str = "<config>") -> list:
    """
    Parse the one top-level S-expression of ``text`` into nested lists.

    Bare atoms come back as :class:`sexpdata.Symbol`, quoted atoms as
    ``str`` and numbers as ``int`` / ``float``.  ``nil`` and ``t`` stay
    symbols.

    Raises
    ------
    ConfigError
        On a syntax error, or unless ``text`` holds exactly one list form.
    """
    # sexpdata reads a single form; wrap so that several forms and trailing
    # comments are seen and reported
    try:
        forms = sexpdata.loads(f"({text}\n)", nil=None, true=None, false=None)
    except Exception as exc:
        raise ConfigError(f"syntax error: {exc}", origin) from exc
    if len(forms) > 1:
        raise ConfigError("unexpected text after the configuration form", origin)
    if not forms or not isinstance(forms[0], list):
        raise ConfigError("configuration must be a single (awaitguard ...) form", origin)
    return forms[0]


@dataclass
class AwaitGuardConfig:
    """
    Effective configuration of one run.

    Attributes
    ----------
    blocking_paths : paths added to the built-in blocking registry
    disabled       : lint names switched off
    severity       : per-lint severity overrides
    suppress       : lint names suppressed everywhere
    exclude        : fnmatch patterns of files to skip
    format         : output format, one of :data:`FORMATS`
    jobs           : number of worker threads
    source         : configuration file this was read from, if any
    """
    blocking_paths: List[Path] = field(default_factory=list)
    disabled: List[str] = field(default_factory=list)
    severity: Dict[str, Severity] = field(default_factory=dict)
    suppress: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    format: str = "human"
    jobs: int = 1
    source: Optional[str] = None

    def registry(self, base: BlockingPrimitiveRegistry = BLOCKING_PRIMITIVES) -> BlockingPrimitiveRegistry:
        if not self.blocking_paths:
            return base
        return base.extend(self.blocking_paths)

    def apply(self, store: LintStore) -> None:
        """
        Push lint levels into ``store``.

        Raises
        ------
        ConfigError
            When a lint name is unknown to the store.
        """
        try:
            for name in self.disabled:
                store.disable(name)
            for name, severity in self.severity.items():
                store.set_severity(name, severity)
        except KeyError as exc:
            raise ConfigError(exc.args[0], self.source or "<command line>") from exc

    def suppressions(self) -> SuppressionManager:
        manager = SuppressionManager()
        for name in self.suppress:
            manager.add_global_suppression(name)
        return manager

    def with_overrides(
        self,
        blocking_paths: Iterable[str] = (),
        disabled: Iterable[str] = (),
        suppress: Iterable[str] = (),
        exclude: Iterable[str] = (),
        format: Optional[str] = None,
        jobs: Optional[int] = None,
    ) -> AwaitGuardConfig:
        """
        Return a copy with command-line values folded in.

        List values are appended, scalar values replace the file's.
        """
        origin = "<command line>"
        extra_paths = [_dotted_path(p, origin) for p in blocking_paths]
        if format is not None and format not in FORMATS:
            raise ConfigError(f"unknown format {format!r}", origin)
        if jobs is not None and jobs < 1:
            raise ConfigError(f"jobs must be a positive integer, got {jobs}", origin)
        return replace(
            self,
            blocking_paths=self.blocking_paths + extra_paths,
            disabled=self.disabled + list(disabled),
            severity=dict(self.severity),
            suppress=self.suppress + list(suppress),
            exclude=self.exclude + list(exclude),
            format=format if format is not None else self.format,
            jobs=jobs if jobs is not None else self.jobs,
        )


# ── reading ──────────────────────────────────────────────────────────────

def _dotted_path(value: Any, origin: str) -> Path:
    if not isinstance(value, str):
        raise ConfigError(f"expected a dotted path, got {value!r}", origin)
    try:
        return parse_path(value)
    except ValueError as exc:
        raise ConfigError(str(exc), origin) from exc


def _name(value: Any, key: str, origin: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"({key} ...) expects names, got {value!r}", origin)
    return str(value)


def _exactly(key: str, args: Sequence[Any], count: int, origin: str) -> None:
    if len(args) != count:
        raise ConfigError(
            f"({key} ...) takes {count} argument{'s' if count != 1 else ''}, "
            f"got {len(args)}",
            origin,
        )


def _read_blocking_paths(config: AwaitGuardConfig, args: list, origin: str) -> None:
    config.blocking_paths.extend(_dotted_path(a, origin) for a in args)


def _read_disable(config: AwaitGuardConfig, args: list, origin: str) -> None:
    config.disabled.extend(_name(a, "disable", origin) for a in args)


def _read_suppress(config: AwaitGuardConfig, args: list, origin: str) -> None:
    config.suppress.extend(_name(a, "suppress", origin) for a in args)


def _read_exclude(config: AwaitGuardConfig, args: list, origin: str) -> None:
    config.exclude.extend(_name(a, "exclude", origin) for a in args)


def _read_severity(config: AwaitGuardConfig, args: list, origin: str) -> None:
    _exactly("severity", args, 2, origin)
    lint_name = _name(args[0], "severity", origin)
    try:
        config.severity[lint_name] = Severity.from_string(_name(args[1], "severity", origin))
    except ValueError as exc:
        raise ConfigError(str(exc), origin) from exc


def _read_format(config: AwaitGuardConfig, args: list, origin: str) -> None:
    _exactly("format", args, 1, origin)
    fmt = _name(args[0], "format", origin)
    if fmt not in FORMATS:
        raise ConfigError(f"unknown format {fmt!r}, expected one of {', '.join(FORMATS)}", origin)
    config.format = fmt


def _read_jobs(config: AwaitGuardConfig, args: list, origin: str) -> None:
    _exactly("jobs", args, 1, origin)
    jobs = args[0]
    if not isinstance(jobs, int) or jobs < 1:
        raise ConfigError(f"(jobs ...) expects a positive integer, got {jobs!r}", origin)
    config.jobs = jobs


_READERS: Dict[str, Callable[[AwaitGuardConfig, list, str], None]] = {
    "blocking-paths": _read_blocking_paths,
    "disable": _read_disable,
    "severity": _read_severity,
    "suppress": _read_suppress,
    "exclude": _read_exclude,
    "format": _read_format,
    "jobs": _read_jobs,
}


def config_from_sexp(form: list, origin: str = "<config>") -> AwaitGuardConfig:
    """Interpret a parsed ``(awaitguard ...)`` form."""
    if not form or not isinstance(form[0], Symbol) or str(form[0]) != "awaitguard":
        raise ConfigError("configuration must be a single (awaitguard ...) form", origin)
    config = AwaitGuardConfig(source=origin)
    for entry in form[1:]:
        if not isinstance(entry, list) or not entry or not isinstance(entry[0], Symbol):
            raise ConfigError(f"expected a (key value ...) entry, got {entry!r}", origin)
        key, args = str(entry[0]), entry[1:]
        reader = _READERS.get(key)
        if reader is None:
            raise ConfigError(f"unknown configuration key {key!r}", origin)
        reader(config, args, origin)
    return config


def load_config(path: Union[str, FsPath]) -> AwaitGuardConfig:
    """
    Read and interpret a configuration file.

    Raises
    ------
    ConfigError
        When the file cannot be read or is malformed.
    """
    origin = str(path)
    try:
        text = FsPath(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read configuration: {exc.strerror or exc}", origin) from exc
    config = config_from_sexp(parse_sexp(text, origin), origin)
    logger.info("loaded configuration from %s", origin)
    return config


def find_config(start: Union[str, FsPath, None] = None) -> Optional[FsPath]:
    """First ``.awaitguard.sexp`` in ``start`` or one of its parents."""
    here = FsPath(start or ".").resolve()
    if here.is_file():
        here = here.parent
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


__all__ = [
    "AwaitGuardConfig",
    "CONFIG_FILENAME",
    "FORMATS",
    "config_from_sexp",
    "find_config",
    "load_config",
    "parse_sexp",
]
