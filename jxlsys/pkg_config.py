"""Thin pkg-config wrapper used by the resolver.

Only the three queries discovery needs are exposed: ``--modversion``,
``--libs-only-L`` and ``--libs-only-l``. The executable can be overridden
with the conventional ``PKG_CONFIG`` environment variable.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Tuple

__all__ = ["PkgConfigModule", "PkgConfigUnavailable", "pkg_config_executable", "probe"]

logger = logging.getLogger(__name__)


class PkgConfigUnavailable(RuntimeError):
    """The pkg-config executable is missing or cannot be run."""


@dataclass(frozen=True)
class PkgConfigModule:
    """What pkg-config reports for one ``.pc`` module."""

    name: str
    version: str
    library_dirs: Tuple[str, ...]
    libraries: Tuple[str, ...]


def pkg_config_executable() -> str:
    return os.environ.get("PKG_CONFIG") or "pkg-config"


def _run(args: List[str]) -> Optional[str]:
    """Run pkg-config; return stripped stdout, or None on a non-zero exit."""
    cmd = [pkg_config_executable(), *args]
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except (FileNotFoundError, PermissionError) as e:
        raise PkgConfigUnavailable(f"{cmd[0]} could not be executed: {e}") from e
    if result.returncode != 0:
        logger.debug("%s exited with %d: %s", cmd[0], result.returncode, result.stderr.strip())
        return None
    return result.stdout.strip()


def _strip_prefix(flags: str, prefix: str) -> Tuple[str, ...]:
    return tuple(
        flag[len(prefix):] for flag in shlex.split(flags) if flag.startswith(prefix) and len(flag) > len(prefix)
    )


def probe(module: str) -> Optional[PkgConfigModule]:
    """Query pkg-config for ``module``.

    Returns:
        The module description, or None if pkg-config does not know it.

    Raises:
        PkgConfigUnavailable: If pkg-config itself cannot be run.
    """
    version = _run(["--modversion", module])
    if version is None:
        return None

    lib_dirs = _run(["--libs-only-L", module]) or ""
    libs = _run(["--libs-only-l", module]) or ""

    return PkgConfigModule(
        name=module,
        version=version,
        library_dirs=_strip_prefix(lib_dirs, "-L"),
        libraries=_strip_prefix(libs, "-l"),
    )
