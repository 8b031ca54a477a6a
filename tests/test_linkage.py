"""Link directives file and the runtime library search built on it."""

import os
import warnings
from pathlib import Path
from unittest.mock import patch

import pytest

from jxlsys import _native
from jxlsys.errors import LibraryNotFoundError
from jxlsys.linkage import LinkDirectives, read_link_directives
from jxlsys.vendor import shared_library_names


class TestLinkDirectives:

    def test_write_and_read(self, tmp_path):
        path = tmp_path / "_link.json"
        directives = LinkDirectives(
            strategy="vendored",
            library_dirs=(".libs",),
            libraries=("jxl", "jxl_threads"),
            version="0.10.3",
            features=("threads",),
        )
        directives.write(path)
        assert read_link_directives(path) == directives

    def test_missing_file(self, tmp_path):
        assert read_link_directives(tmp_path / "_link.json") is None

    def test_relative_dirs_resolve_against_package(self, tmp_path):
        directives = LinkDirectives(strategy="vendored", library_dirs=(".libs", "/usr/lib"))
        relative, absolute = directives.resolved_dirs(tmp_path)
        assert relative == (tmp_path / ".libs").resolve()
        assert absolute == Path("/usr/lib")

    def test_threads_flag(self):
        assert LinkDirectives(strategy="pkg-config", features=("threads",)).threads
        assert not LinkDirectives(strategy="pkg-config").threads


class TestDecodeVersion:

    @pytest.mark.parametrize("value,expected", [
        (10003, (0, 10, 3)),
        (11000, (0, 11, 0)),
        (1002003, (1, 2, 3)),
    ])
    def test_decode_version(self, value, expected):
        assert _native.decode_version(value) == expected


class TestFindLibrary:

    def test_env_dir_first(self, tmp_path):
        lib = tmp_path / shared_library_names("jxl")[0]
        lib.write_bytes(b"")
        with patch.dict(os.environ, {"JXLSYS_LIB_DIR": str(tmp_path)}), \
             patch("jxlsys._native.read_link_directives", return_value=None):
            assert _native._find_library("jxl") == str(lib)

    def test_link_directives_dirs(self, tmp_path):
        lib = tmp_path / shared_library_names("jxl_threads")[0]
        lib.write_bytes(b"")
        directives = LinkDirectives(strategy="lib-dir", library_dirs=(str(tmp_path),))
        with patch.dict(os.environ, {}, clear=True), \
             patch("jxlsys._native.read_link_directives", return_value=directives):
            assert _native._find_library("jxl_threads") == str(lib)

    def test_not_found(self):
        with patch.dict(os.environ, {}, clear=True), \
             patch("jxlsys._native.read_link_directives", return_value=None), \
             patch("ctypes.util.find_library", return_value=None):
            with pytest.raises(LibraryNotFoundError, match="JXLSYS_LIB_DIR"):
                _native._find_library("jxl")

    def test_dynamic_loader_fallback(self):
        with patch.dict(os.environ, {}, clear=True), \
             patch("jxlsys._native.read_link_directives", return_value=None), \
             patch("ctypes.util.find_library", return_value="libjxl.so.0.10"):
            assert _native._find_library("jxl") == "libjxl.so.0.10"

    def test_fallback_warns_when_recorded_dirs_are_stale(self, tmp_path):
        directives = LinkDirectives(strategy="vendored", library_dirs=(str(tmp_path),), libraries=("jxl",))
        with patch.dict(os.environ, {}, clear=True), \
             patch("jxlsys._native.read_link_directives", return_value=directives), \
             patch("ctypes.util.find_library", return_value="libjxl.so.0.10"):
            with pytest.warns(RuntimeWarning, match="recorded at build time"):
                assert _native._find_library("jxl") == "libjxl.so.0.10"

    def test_system_default_dirs_do_not_warn(self):
        # pkg-config omits -L for the default search path
        directives = LinkDirectives(strategy="pkg-config", library_dirs=(), libraries=("jxl", "jxl_threads"))
        with patch.dict(os.environ, {}, clear=True), \
             patch("jxlsys._native.read_link_directives", return_value=directives), \
             patch("ctypes.util.find_library", return_value="libjxl.so.0.10"), \
             warnings.catch_warnings():
            warnings.simplefilter("error")
            assert _native._find_library("jxl") == "libjxl.so.0.10"
