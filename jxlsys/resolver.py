"""Decide how libjxl is obtained for this build.

``resolve()`` is a small decision procedure returning exactly one outcome:

1. Discovery (preferred):
   a. ``JXLSYS_LIB_DIR`` / ``lib-dir``: a prebuilt library directory whose
      ``jxl/version.h`` proves a compatible version.
   b. pkg-config: ``libjxl`` in range, and ``libjxl_threads`` at the same
      version when threads are requested.
2. Vendoring (fallback, opt-in): build ``vendor/libjxl`` with the threads
   request forwarded into the sub-build.
3. Otherwise ``ResolutionError`` listing every attempted strategy.

A system library that cannot prove threading support never satisfies a
threads request; the capability is not silently dropped.

Usage:
    spec = LibrarySpecification.from_config(config, os.environ)
    outcome = resolve(spec, source_dir=root / "vendor" / "libjxl",
                      build_dir=root / "build" / "libjxl")
    directives = outcome.link_directives()
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from jxlsys import pkg_config, vendor
from jxlsys.errors import ResolutionError, VendorBuildError
from jxlsys.features import VENDORED_ENV_VAR, LibrarySpecification, Version, format_version
from jxlsys.linkage import LinkDirectives

__all__ = [
    "SystemLibrary",
    "VendoredBuild",
    "ResolutionOutcome",
    "resolve",
    "discover_lib_dir",
    "discover_pkg_config",
    "read_header_version",
]

logger = logging.getLogger(__name__)

_HEADER_VERSION_RE = re.compile(r"#define\s+JPEGXL_(MAJOR|MINOR|PATCH)_VERSION\s+(\d+)")


@dataclass(frozen=True)
class SystemLibrary:
    """An installed libjxl inside the requested range, with the requested capabilities."""

    search_paths: Tuple[str, ...]
    linked_libs: Tuple[str, ...]
    version: str
    strategy: str = "pkg-config"
    features: frozenset = frozenset()

    def link_directives(self) -> LinkDirectives:
        return LinkDirectives(
            strategy=self.strategy,
            library_dirs=self.search_paths,
            libraries=self.linked_libs,
            version=self.version,
            features=tuple(sorted(self.features)),
        )


@dataclass(frozen=True)
class VendoredBuild:
    """A libjxl built from the bundled sources for this build."""

    build_flags: Tuple[str, ...]
    targets: Tuple[str, ...]
    features: frozenset
    output_artifact_path: Path
    version: str

    def link_directives(self) -> LinkDirectives:
        return LinkDirectives(
            strategy="vendored",
            library_dirs=(str(self.output_artifact_path),),
            libraries=self.targets,
            version=self.version,
            features=tuple(sorted(self.features)),
        )


ResolutionOutcome = Union[SystemLibrary, VendoredBuild]


class _StrategyFailed(Exception):
    """Internal: one strategy did not produce an outcome."""


# =============================================================================
# Discovery: explicit directory
# =============================================================================

def read_header_version(lib_dir: Path) -> Optional[Version]:
    """Read ``JPEGXL_*_VERSION`` from the ``jxl/version.h`` next to ``lib_dir``."""
    for include in (lib_dir / "include", lib_dir.parent / "include"):
        header = include / "jxl" / "version.h"
        if header.is_file():
            parts = dict(_HEADER_VERSION_RE.findall(header.read_text(encoding="utf-8", errors="replace")))
            if {"MAJOR", "MINOR", "PATCH"} <= parts.keys():
                return (int(parts["MAJOR"]), int(parts["MINOR"]), int(parts["PATCH"]))
    return None


def discover_lib_dir(spec: LibrarySpecification) -> SystemLibrary:
    """Validate an explicitly configured library directory."""
    lib_dir = spec.lib_dir
    if lib_dir is None:
        raise _StrategyFailed("not configured")
    if not lib_dir.is_dir():
        raise _StrategyFailed(f"{lib_dir} is not a directory")

    libraries: List[str] = ["jxl"]
    if spec.threads:
        libraries.append("jxl_threads")
    for name in libraries:
        if not any(any(lib_dir.glob(p)) for p in vendor.shared_library_names(name)):
            reason = f"lib{name} not found in {lib_dir}"
            if name == "jxl_threads":
                reason += " (threading support unproven)"
            raise _StrategyFailed(reason)

    version = read_header_version(lib_dir)
    if version is None:
        raise _StrategyFailed(f"no jxl/version.h beside {lib_dir}; version unproven")
    if not spec.accepts(version):
        raise _StrategyFailed(
            f"version {format_version(version)} outside {spec.version_range}"
        )

    return SystemLibrary(
        search_paths=(str(lib_dir.resolve()),),
        linked_libs=tuple(libraries),
        version=format_version(version),
        strategy="lib-dir",
        features=spec.features,
    )


# =============================================================================
# Discovery: pkg-config
# =============================================================================

def discover_pkg_config(spec: LibrarySpecification) -> SystemLibrary:
    """Discover libjxl (and libjxl_threads) through pkg-config."""
    try:
        jxl = pkg_config.probe("libjxl")
    except pkg_config.PkgConfigUnavailable as e:
        raise _StrategyFailed(str(e)) from e
    if jxl is None:
        raise _StrategyFailed("libjxl.pc not found")
    if not spec.accepts(jxl.version):
        raise _StrategyFailed(f"libjxl {jxl.version} outside {spec.version_range}")

    search_paths = list(jxl.library_dirs)
    linked_libs = list(jxl.libraries) or ["jxl"]

    if spec.threads:
        threads = pkg_config.probe("libjxl_threads")
        if threads is None:
            raise _StrategyFailed(
                f"libjxl {jxl.version} found but libjxl_threads.pc is missing; "
                "threading support unproven"
            )
        if threads.version != jxl.version:
            raise _StrategyFailed(
                f"libjxl_threads {threads.version} does not match libjxl {jxl.version}; "
                "threading support unproven"
            )
        for path in threads.library_dirs:
            if path not in search_paths:
                search_paths.append(path)
        for lib in threads.libraries or ("jxl_threads",):
            if lib not in linked_libs:
                linked_libs.append(lib)

    return SystemLibrary(
        search_paths=tuple(search_paths),
        linked_libs=tuple(linked_libs),
        version=jxl.version,
        strategy="pkg-config",
        features=spec.features,
    )


# =============================================================================
# Vendoring
# =============================================================================

def _vendor(spec: LibrarySpecification, source_dir: Path, build_dir: Path, jobs: Optional[int]) -> VendoredBuild:
    version = vendor.read_source_version(source_dir)
    if version is not None and not spec.accepts(version):
        raise VendorBuildError(
            f"Vendored libjxl {format_version(version)} outside {spec.version_range}"
        )

    plan = vendor.plan_build(spec, source_dir, build_dir)
    artifact_path = vendor.execute_build(plan, jobs=jobs)
    return VendoredBuild(
        build_flags=plan.build_flags,
        targets=plan.targets,
        features=spec.features,
        output_artifact_path=artifact_path,
        version=format_version(version) if version else "",
    )


# =============================================================================
# Decision procedure
# =============================================================================

_DISCOVERY: Tuple[Tuple[str, Callable[[LibrarySpecification], SystemLibrary]], ...] = (
    ("lib-dir", discover_lib_dir),
    ("pkg-config", discover_pkg_config),
)


def resolve(
    spec: LibrarySpecification,
    source_dir: Optional[Path] = None,
    build_dir: Optional[Path] = None,
    jobs: Optional[int] = None,
) -> ResolutionOutcome:
    """Resolve ``spec`` to exactly one outcome.

    Args:
        spec: The build's library specification.
        source_dir: Vendored libjxl source tree (default ``vendor/libjxl``).
        build_dir: Scratch directory for the vendored build.
        jobs: Parallel build jobs for the vendored build.

    Raises:
        ResolutionError: If no strategy succeeds. ``VendorBuildError`` when
            the vendored build was attempted and failed.
    """
    attempts: List[Tuple[str, str]] = []

    for name, strategy in _DISCOVERY:
        if name == "lib-dir" and spec.lib_dir is None:
            continue
        try:
            outcome = strategy(spec)
        except _StrategyFailed as e:
            logger.info("Discovery via %s failed: %s", name, e)
            attempts.append((name, str(e)))
            continue
        logger.info(
            "Using system libjxl %s via %s (libs: %s)",
            outcome.version, name, ", ".join(outcome.linked_libs),
        )
        return outcome

    if not spec.vendored:
        attempts.append(("vendored", f"disabled (set {VENDORED_ENV_VAR}=1 to build bundled sources)"))
        raise ResolutionError(f"Could not find {spec.describe()}.", attempts)

    source_dir = Path(source_dir) if source_dir is not None else vendor.VENDOR_SOURCE_DIR
    build_dir = Path(build_dir) if build_dir is not None else Path("build") / "libjxl"
    logger.info("Building vendored libjxl from %s (threads=%s)", source_dir, spec.threads)
    try:
        return _vendor(spec, source_dir, build_dir, jobs)
    except VendorBuildError as e:
        attempts.append(("vendored", str(e)))
        raise VendorBuildError(f"Could not find or build {spec.describe()}.", attempts) from e

