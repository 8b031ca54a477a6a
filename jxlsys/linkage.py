"""Link directives: the persisted result of build-time resolution.

The build hook writes ``jxlsys/_link.json`` after resolving the library; the
runtime loader reads it to open exactly the libraries the build chose.

Library directories inside the package (vendored artifacts copied to
``jxlsys/.libs``) are stored relative to the package directory so the
installed package can be relocated.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional, Tuple

__all__ = ["LINK_CONFIG_NAME", "PACKAGE_DIR", "LinkDirectives", "read_link_directives"]

LINK_CONFIG_NAME = "_link.json"

PACKAGE_DIR = Path(__file__).parent


@dataclass(frozen=True)
class LinkDirectives:
    """Which native libraries to load and where to find them.

    Attributes:
        strategy: ``pkg-config``, ``lib-dir`` or ``vendored``.
        library_dirs: Search directories, absolute or relative to the
            package directory.
        libraries: Library names without prefix/suffix (``jxl``,
            ``jxl_threads``).
        version: Version the build resolved.
        features: Capability flags the library was resolved with.
    """

    strategy: str
    library_dirs: Tuple[str, ...] = ()
    libraries: Tuple[str, ...] = ("jxl",)
    version: str = ""
    features: Tuple[str, ...] = field(default=())

    @property
    def threads(self) -> bool:
        return "threads" in self.features

    def resolved_dirs(self, base: Path = PACKAGE_DIR) -> Tuple[Path, ...]:
        return tuple(
            Path(d) if Path(d).is_absolute() else (base / d).resolve()
            for d in self.library_dirs
        )

    def to_json(self) -> str:
        data = asdict(self)
        data["library_dirs"] = list(self.library_dirs)
        data["libraries"] = list(self.libraries)
        data["features"] = list(self.features)
        return json.dumps(data, indent=2, sort_keys=True) + "\n"

    @classmethod
    def from_json(cls, text: str) -> "LinkDirectives":
        data = json.loads(text)
        return cls(
            strategy=data["strategy"],
            library_dirs=tuple(data.get("library_dirs", ())),
            libraries=tuple(data.get("libraries", ("jxl",))),
            version=data.get("version", ""),
            features=tuple(data.get("features", ())),
        )

    def write(self, path: Path) -> None:
        path.write_text(self.to_json(), encoding="utf-8")


def read_link_directives(path: Optional[Path] = None) -> Optional[LinkDirectives]:
    """Read the directives recorded at build time, or None if there are none."""
    path = path or PACKAGE_DIR / LINK_CONFIG_NAME
    if not path.is_file():
        return None
    return LinkDirectives.from_json(path.read_text(encoding="utf-8"))
