"""Build feature flags and the library specification derived from them.

A ``LibrarySpecification`` is created once per build from the build hook's
options, with environment variables taking precedence:

    JXLSYS_VENDORED: Build the bundled libjxl sources when no compatible
                     system library is found. Default: off.
    JXLSYS_THREADS:  Require threaded execution support (libjxl_threads).
                     Default: on.
    JXLSYS_LIB_DIR:  Directory holding a prebuilt libjxl to use instead of
                     pkg-config discovery.

Usage:
    spec = LibrarySpecification.from_config({"vendored": True}, os.environ)
    spec.accepts("0.10.3")  # True
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

__all__ = [
    "BOUND_VERSION",
    "MIN_VERSION",
    "MAX_VERSION",
    "VENDORED_ENV_VAR",
    "THREADS_ENV_VAR",
    "LIB_DIR_ENV_VAR",
    "LibrarySpecification",
    "parse_version",
    "format_version",
    "parse_flag",
]

Version = Tuple[int, int, int]

# Version the declarations in jxlsys.structs / jxlsys._native are written against
BOUND_VERSION: Version = (0, 10, 3)

# Compatible range: [MIN_VERSION, MAX_VERSION). 0.x minor bumps break the ABI.
MIN_VERSION: Version = BOUND_VERSION
MAX_VERSION: Version = (0, 11, 0)

VENDORED_ENV_VAR = "JXLSYS_VENDORED"
THREADS_ENV_VAR = "JXLSYS_THREADS"
LIB_DIR_ENV_VAR = "JXLSYS_LIB_DIR"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

_VERSION_RE = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(text: str) -> Version:
    """Parse a ``major[.minor[.patch]]`` version string.

    Trailing suffixes (``0.10.3-rc1``, ``0.10.3+git``) are ignored.

    Raises:
        ValueError: If ``text`` does not start with a version number.
    """
    match = _VERSION_RE.match(text)
    if match is None:
        raise ValueError(f"Not a version string: {text!r}")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return (major, minor, patch)


def format_version(version: Version) -> str:
    return ".".join(str(part) for part in version)


def parse_flag(value: Any, name: str = "flag") -> bool:
    """Interpret a config or environment value as a boolean."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Invalid value for {name}: {value!r} (expected one of on/off, 1/0, true/false)")


@dataclass(frozen=True)
class LibrarySpecification:
    """What the build asks of the native codec library.

    Attributes:
        min_version: Lowest acceptable version (inclusive).
        max_version: First unacceptable version (exclusive).
        threads: Require libjxl_threads. A capability flag is a contract:
            resolution fails rather than silently dropping it.
        vendored: Allow building the bundled sources as a fallback.
        lib_dir: Explicit directory holding a prebuilt libjxl.
    """

    min_version: Version = MIN_VERSION
    max_version: Version = MAX_VERSION
    threads: bool = True
    vendored: bool = False
    lib_dir: Optional[Path] = field(default=None)

    def __post_init__(self) -> None:
        if self.min_version >= self.max_version:
            raise ValueError(
                f"Empty version range: >={format_version(self.min_version)},"
                f"<{format_version(self.max_version)}"
            )

    @classmethod
    def from_config(
        cls,
        config: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "LibrarySpecification":
        """Build a specification from hook options and environment overrides.

        Args:
            config: Options from ``[tool.hatch.build.hooks.custom]``.
                Recognised keys: ``vendored``, ``threads``, ``lib-dir``.
            environ: Environment mapping (usually ``os.environ``).
        """
        config = dict(config or {})
        environ = environ or {}

        vendored = parse_flag(config.get("vendored", False), "vendored")
        threads = parse_flag(config.get("threads", True), "threads")
        lib_dir = config.get("lib-dir") or None

        if VENDORED_ENV_VAR in environ:
            vendored = parse_flag(environ[VENDORED_ENV_VAR], VENDORED_ENV_VAR)
        if THREADS_ENV_VAR in environ:
            threads = parse_flag(environ[THREADS_ENV_VAR], THREADS_ENV_VAR)
        if environ.get(LIB_DIR_ENV_VAR):
            lib_dir = environ[LIB_DIR_ENV_VAR]

        return cls(
            threads=threads,
            vendored=vendored,
            lib_dir=Path(lib_dir).expanduser() if lib_dir else None,
        )

    @property
    def version_range(self) -> str:
        return f">={format_version(self.min_version)},<{format_version(self.max_version)}"

    @property
    def features(self) -> frozenset:
        return frozenset({"threads"}) if self.threads else frozenset()

    def accepts(self, version: str | Version) -> bool:
        """Whether ``version`` lies inside the compatible range."""
        if isinstance(version, str):
            try:
                version = parse_version(version)
            except ValueError:
                return False
        return self.min_version <= tuple(version) < self.max_version

    def describe(self) -> str:
        """Human-readable summary used in diagnostics."""
        caps = " with threads" if self.threads else ""
        return f"libjxl {self.version_range}{caps}"
