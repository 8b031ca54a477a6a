"""Build the bundled libjxl sources with CMake.

The vendored tree lives in ``vendor/libjxl`` (a git submodule pinned to the
bound libjxl release). Only the shared libraries are built; tools, tests,
docs and optional codecs are switched off and brotli/highway come from the
tree's own ``third_party`` directory.

The threads capability is forwarded by building the ``jxl_threads`` target
next to ``jxl``. Built shared objects are collected into one artifact
directory with an ``$ORIGIN`` rpath so they resolve each other when loaded
from there.

Requires cmake and a C++ compiler:
  - macOS: brew install cmake
  - Ubuntu: apt-get install cmake g++
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass
from multiprocessing import cpu_count
from pathlib import Path
from typing import List, Optional, Tuple

from jxlsys.errors import VendorBuildError
from jxlsys.features import LibrarySpecification, Version

__all__ = [
    "VENDOR_SOURCE_DIR",
    "VendorPlan",
    "plan_build",
    "execute_build",
    "read_source_version",
    "shared_library_names",
]

logger = logging.getLogger(__name__)

VENDOR_SOURCE_DIR = Path("vendor") / "libjxl"

_CMAKE_DEFINES: Tuple[str, ...] = (
    "-DCMAKE_BUILD_TYPE=Release",
    "-DBUILD_SHARED_LIBS=ON",
    "-DBUILD_TESTING=OFF",
    "-DJPEGXL_ENABLE_TOOLS=OFF",
    "-DJPEGXL_ENABLE_EXAMPLES=OFF",
    "-DJPEGXL_ENABLE_JPEGLI=OFF",
    "-DJPEGXL_ENABLE_SJPEG=OFF",
    "-DJPEGXL_ENABLE_OPENEXR=OFF",
    "-DJPEGXL_ENABLE_BENCHMARK=OFF",
    "-DJPEGXL_ENABLE_DOXYGEN=OFF",
    "-DJPEGXL_ENABLE_MANPAGES=OFF",
    "-DJPEGXL_ENABLE_JNI=OFF",
    "-DJPEGXL_ENABLE_PLUGINS=OFF",
    "-DJPEGXL_ENABLE_SKCMS=ON",
    "-DJPEGXL_BUNDLE_LIBPNG=OFF",
    "-DJPEGXL_FORCE_SYSTEM_BROTLI=OFF",
    "-DJPEGXL_FORCE_SYSTEM_HWY=OFF",
    "-DCMAKE_BUILD_WITH_INSTALL_RPATH=ON",
)

_VERSION_PART_RE = re.compile(r"set\(\s*JPEGXL_LIBRARY_(MAJOR|MINOR|PATCH)\s+(\d+)\s*\)")


@dataclass(frozen=True)
class VendorPlan:
    """Everything needed to run (or describe) one vendored build."""

    source_dir: Path
    build_dir: Path
    artifact_dir: Path
    build_flags: Tuple[str, ...]
    targets: Tuple[str, ...]
    threads: bool

    def configure_command(self) -> List[str]:
        return ["cmake", "-S", str(self.source_dir), "-B", str(self.build_dir), *self.build_flags]

    def build_command(self, jobs: int) -> List[str]:
        return ["cmake", "--build", str(self.build_dir), "--target", *self.targets, f"-j{jobs}"]


def _rpath_flag() -> str:
    if sys.platform == "darwin":
        return "-DCMAKE_INSTALL_RPATH=@loader_path"
    return "-DCMAKE_INSTALL_RPATH=$ORIGIN"


def _threads_flag(threads: bool) -> str:
    # Recorded in the CMake cache so the build tree shows what was requested
    return f"-DJXLSYS_THREADS={'ON' if threads else 'OFF'}"


def shared_library_names(name: str) -> Tuple[str, ...]:
    """Glob patterns matching the shared-library files of library ``name``."""
    if sys.platform == "darwin":
        return (f"lib{name}.dylib", f"lib{name}.*.dylib")
    if sys.platform == "win32":
        return (f"{name}.dll", f"lib{name}.dll")
    return (f"lib{name}.so", f"lib{name}.so.*")


def read_source_version(source_dir: Path) -> Optional[Version]:
    """Read the library version declared in the vendored ``lib/CMakeLists.txt``."""
    cmake_lists = source_dir / "lib" / "CMakeLists.txt"
    if not cmake_lists.is_file():
        return None
    parts = dict(_VERSION_PART_RE.findall(cmake_lists.read_text(encoding="utf-8", errors="replace")))
    if not {"MAJOR", "MINOR", "PATCH"} <= parts.keys():
        return None
    return (int(parts["MAJOR"]), int(parts["MINOR"]), int(parts["PATCH"]))


def plan_build(spec: LibrarySpecification, source_dir: Path, build_dir: Path) -> VendorPlan:
    """Describe the vendored build for ``spec`` without running anything."""
    targets: Tuple[str, ...] = ("jxl", "jxl_threads") if spec.threads else ("jxl",)
    return VendorPlan(
        source_dir=Path(source_dir),
        build_dir=Path(build_dir),
        artifact_dir=Path(build_dir) / "artifacts",
        build_flags=_CMAKE_DEFINES + (_rpath_flag(), _threads_flag(spec.threads)),
        targets=targets,
        threads=spec.threads,
    )


def _run(cmd: List[str]) -> None:
    logger.info("Running %s", " ".join(cmd))
    try:
        subprocess.run(cmd, check=True)
    except FileNotFoundError as e:
        raise VendorBuildError(f"{cmd[0]} not found; cmake is required to build vendored libjxl") from e
    except subprocess.CalledProcessError as e:
        raise VendorBuildError(
            f"Vendored libjxl build step failed (exit code {e.returncode}): {' '.join(cmd)}"
        ) from e


def _collect_artifacts(plan: VendorPlan) -> List[Path]:
    """Copy built shared objects (symlinks preserved) into the artifact directory."""
    if plan.artifact_dir.exists():
        shutil.rmtree(plan.artifact_dir)
    plan.artifact_dir.mkdir(parents=True)

    patterns = ("*.so", "*.so.*", "*.dylib", "*.dll")
    copied: List[Path] = []
    for pattern in patterns:
        for path in plan.build_dir.rglob(pattern):
            if "CMakeFiles" in path.parts or plan.artifact_dir in path.parents:
                continue
            dest = plan.artifact_dir / path.name
            if dest.exists() or dest.is_symlink():
                continue
            shutil.copy2(path, dest, follow_symlinks=False)
            copied.append(dest)
    return copied


def _has_library(directory: Path, name: str) -> bool:
    return any(any(directory.glob(pattern)) for pattern in shared_library_names(name))


def execute_build(plan: VendorPlan, jobs: Optional[int] = None) -> Path:
    """Configure, build and collect the vendored libraries.

    Returns:
        The artifact directory holding the shared libraries.

    Raises:
        VendorBuildError: If the source tree is missing, a build step fails,
            or an expected library was not produced.
    """
    if not (plan.source_dir / "CMakeLists.txt").is_file():
        raise VendorBuildError(
            f"Vendored libjxl sources not found at {plan.source_dir}. "
            "Fetch them with: git submodule update --init --recursive vendor/libjxl"
        )

    jobs = jobs or cpu_count()
    plan.build_dir.mkdir(parents=True, exist_ok=True)
    _run(plan.configure_command())
    _run(plan.build_command(jobs))

    copied = _collect_artifacts(plan)
    logger.debug("Collected %d vendored artifacts into %s", len(copied), plan.artifact_dir)

    expected = list(plan.targets)
    missing = [name for name in expected if not _has_library(plan.artifact_dir, name)]
    if missing:
        raise VendorBuildError(
            f"Vendored build finished but did not produce: {', '.join('lib' + m for m in missing)}"
        )
    return plan.artifact_dir
