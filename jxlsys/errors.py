"""Exception types for jxlsys.

Build-time failures (``ResolutionError`` and ``VendorBuildError``) abort the
build. Load-time failures (``LibraryNotFoundError``, ``AbiVersionError``)
surface the first time the native library is needed. Decoder and encoder
state-machine errors are never raised: they come back as status values.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

__all__ = [
    "JxlSysError",
    "ResolutionError",
    "VendorBuildError",
    "LibraryNotFoundError",
    "AbiVersionError",
    "HandleClosedError",
]


class JxlSysError(Exception):
    """Base class for all jxlsys errors."""


class ResolutionError(JxlSysError):
    """No library satisfying the requested specification could be resolved.

    Attributes:
        attempts: ``(strategy, reason)`` pairs, in the order they were tried.
    """

    def __init__(self, message: str, attempts: Sequence[Tuple[str, str]] = ()) -> None:
        self.attempts: List[Tuple[str, str]] = list(attempts)
        if self.attempts:
            lines = [message, "Attempted strategies:"]
            lines.extend(f"  - {name}: {reason}" for name, reason in self.attempts)
            message = "\n".join(lines)
        super().__init__(message)


class VendorBuildError(ResolutionError):
    """The vendored libjxl sub-build failed."""


class LibraryNotFoundError(JxlSysError):
    """libjxl (or libjxl_threads) could not be loaded at runtime."""


class AbiVersionError(JxlSysError):
    """The loaded library reports a version outside the bound ABI range."""


class HandleClosedError(JxlSysError):
    """An operation was attempted on a destroyed native handle."""
