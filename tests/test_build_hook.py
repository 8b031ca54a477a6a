"""The hatch build hook: link directives, vendored artifacts, strict mode."""

import importlib.util
import json
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

pytest.importorskip("hatchling")

from jxlsys.errors import ResolutionError  # noqa: E402
from jxlsys.resolver import SystemLibrary, VendoredBuild  # noqa: E402

HOOK_PATH = Path(__file__).resolve().parent.parent / "hatch_build.py"


@pytest.fixture(scope="module")
def hook_module():
    spec = importlib.util.spec_from_file_location("jxlsys_hatch_build", HOOK_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def project(tmp_path):
    (tmp_path / "jxlsys").mkdir()
    return tmp_path


def make_hook(module, root, config=None):
    return module.JxlsysBuildHook(
        str(root), config or {}, MagicMock(), MagicMock(), str(root / "dist"), "wheel", app=MagicMock()
    )


SYSTEM = SystemLibrary(
    search_paths=("/usr/lib",),
    linked_libs=("jxl", "jxl_threads"),
    version="0.10.3",
    features=frozenset({"threads"}),
)


class TestBuildHook:

    def test_writes_link_directives(self, hook_module, project):
        build_data = {"artifacts": []}
        with patch.object(hook_module, "resolve", return_value=SYSTEM), \
             patch.dict(os.environ, {}, clear=True):
            make_hook(hook_module, project).initialize("standard", build_data)

        data = json.loads((project / "jxlsys" / "_link.json").read_text())
        assert data["strategy"] == "pkg-config"
        assert data["library_dirs"] == ["/usr/lib"]
        assert data["features"] == ["threads"]
        assert "jxlsys/_link.json" in build_data["artifacts"]

    def test_vendored_artifacts_packaged(self, hook_module, project):
        artifacts = project / "build" / "libjxl" / "artifacts"
        artifacts.mkdir(parents=True)
        (artifacts / "libjxl.so").write_bytes(b"\x7fELF")
        outcome = VendoredBuild(
            build_flags=(),
            targets=("jxl",),
            features=frozenset(),
            output_artifact_path=artifacts,
            version="0.10.3",
        )
        build_data = {"artifacts": []}
        with patch.object(hook_module, "resolve", return_value=outcome), \
             patch.dict(os.environ, {}, clear=True):
            make_hook(hook_module, project).initialize("standard", build_data)

        assert (project / "jxlsys" / ".libs" / "libjxl.so").exists()
        data = json.loads((project / "jxlsys" / "_link.json").read_text())
        assert data["library_dirs"] == [".libs"]
        assert build_data["pure_python"] is False

    def test_failure_is_a_warning_by_default(self, hook_module, project):
        stale = project / "jxlsys" / "_link.json"
        stale.write_text("{}")
        hook = make_hook(hook_module, project)
        with patch.object(hook_module, "resolve", side_effect=ResolutionError("no libjxl", [("pkg-config", "missing")])), \
             patch.dict(os.environ, {}, clear=True):
            hook.initialize("standard", {"artifacts": []})
        hook.app.display_warning.assert_called_once()
        assert not stale.exists()

    @pytest.mark.parametrize("config,environ", [
        ({"strict": True}, {}),
        ({}, {"JXLSYS_STRICT": "1"}),
    ])
    def test_strict_mode_raises(self, hook_module, project, config, environ):
        with patch.object(hook_module, "resolve", side_effect=ResolutionError("no libjxl")), \
             patch.dict(os.environ, environ, clear=True):
            with pytest.raises(ResolutionError):
                make_hook(hook_module, project, config).initialize("standard", {"artifacts": []})

    def test_environment_reaches_specification(self, hook_module, project):
        with patch.object(hook_module, "resolve", return_value=SYSTEM) as resolve, \
             patch.dict(os.environ, {"JXLSYS_VENDORED": "yes", "JXLSYS_THREADS": "0"}, clear=True):
            make_hook(hook_module, project, {"vendored": False}).initialize("standard", {"artifacts": []})
        spec = resolve.call_args[0][0]
        assert spec.vendored is True
        assert spec.threads is False
