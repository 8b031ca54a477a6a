"""Hatch build hook that resolves libjxl before packaging.

This hook runs automatically during `pip install` / `uv sync`. It finds a
compatible system libjxl (pkg-config or JXLSYS_LIB_DIR), or builds the
vendored sources when allowed, and records the choice in
`jxlsys/_link.json` for the runtime loader.

Options in pyproject.toml, each overridable by environment:
  [tool.hatch.build.hooks.custom]
  vendored = false   # JXLSYS_VENDORED=1 builds vendor/libjxl if needed
  threads = true     # JXLSYS_THREADS=0 drops the libjxl_threads requirement
  strict = false     # JXLSYS_STRICT=1 makes a failed resolution abort

Requires system libjxl 0.10:
  - macOS: brew install jpeg-xl
  - Ubuntu: apt-get install libjxl-dev
or the vendored submodule (git submodule update --init --recursive) plus
cmake and a C++ compiler.
"""

import dataclasses
import os
import shutil
import sys
from pathlib import Path

from hatchling.builders.hooks.plugin.interface import BuildHookInterface

sys.path.insert(0, str(Path(__file__).parent))

from jxlsys.errors import ResolutionError, VendorBuildError  # noqa: E402
from jxlsys.features import LibrarySpecification, parse_flag  # noqa: E402
from jxlsys.linkage import LINK_CONFIG_NAME  # noqa: E402
from jxlsys.resolver import VendoredBuild, resolve  # noqa: E402

STRICT_ENV_VAR = "JXLSYS_STRICT"

# Vendored shared libraries are shipped inside the package
PACKAGED_LIB_DIR = ".libs"


class JxlsysBuildHook(BuildHookInterface):
    PLUGIN_NAME = "custom"

    def _strict(self) -> bool:
        value = os.environ.get(STRICT_ENV_VAR, self.config.get("strict", False))
        return parse_flag(value, STRICT_ENV_VAR)

    def initialize(self, version, build_data):
        """Resolve libjxl and write the link directives before packaging."""
        root = Path(self.root)
        package_dir = root / "jxlsys"
        link_file = package_dir / LINK_CONFIG_NAME

        try:
            spec = LibrarySpecification.from_config(self.config, os.environ)
        except ValueError as e:
            raise ValueError(f"Invalid jxlsys build options: {e}") from e

        self.app.display_info(f"Resolving {spec.describe()}...")

        try:
            outcome = resolve(
                spec,
                source_dir=root / "vendor" / "libjxl",
                build_dir=root / "build" / "libjxl",
            )
        except ResolutionError as e:
            if link_file.exists():
                link_file.unlink()
            if self._strict():
                raise
            kind = "Vendored libjxl build failed" if isinstance(e, VendorBuildError) else "libjxl not resolved"
            self.app.display_warning(
                f"{kind}; jxlsys will look for libjxl at runtime instead.\n{e}\n"
                "Install libjxl:\n"
                "  macOS: brew install jpeg-xl\n"
                "  Ubuntu: apt-get install libjxl-dev\n"
                f"or set {STRICT_ENV_VAR}=1 to make this an error."
            )
            return

        directives = outcome.link_directives()
        if isinstance(outcome, VendoredBuild):
            packaged = package_dir / PACKAGED_LIB_DIR
            if packaged.exists():
                shutil.rmtree(packaged)
            shutil.copytree(outcome.output_artifact_path, packaged, symlinks=True)
            directives = dataclasses.replace(directives, library_dirs=(PACKAGED_LIB_DIR,))
            build_data["artifacts"].append(f"jxlsys/{PACKAGED_LIB_DIR}/*")
            build_data["pure_python"] = False
            build_data["infer_tag"] = True

        directives.write(link_file)
        build_data["artifacts"].append(f"jxlsys/{LINK_CONFIG_NAME}")
        self.app.display_success(
            f"Using libjxl {directives.version or '(version unknown)'} via {directives.strategy}"
            + (" with threads" if directives.threads else "")
        )
