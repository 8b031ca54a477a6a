"""Test that all public imports work.

Importing jxlsys must not need libjxl; the library is loaded on first use.
"""


class TestTopLevelImports:
    """All symbols exported from jxlsys.__init__."""

    def test_handles(self):
        from jxlsys import Decoder, DecoderState, Encoder, FrameSettings, signature_check

    def test_loader(self):
        from jxlsys import load_library, load_threads_library, library_version
        from jxlsys import check_library_available, check_threads_available

    def test_callbacks_and_runners(self):
        from jxlsys import CallbackTable, MemoryManager, PythonMemoryManager
        from jxlsys import ParallelRunner, PythonParallelRunner
        from jxlsys import ThreadParallelRunner, ResizableParallelRunner

    def test_buffers(self):
        from jxlsys import readable_buffer, writable_buffer, empty_image_buffer, image_buffer_size

    def test_resolution(self):
        from jxlsys import LibrarySpecification, LinkDirectives, resolve
        from jxlsys import SystemLibrary, VendoredBuild

    def test_errors(self):
        from jxlsys import JxlSysError, ResolutionError, VendorBuildError
        from jxlsys import LibraryNotFoundError, AbiVersionError, HandleClosedError

    def test_all_is_consistent(self):
        import jxlsys

        missing = [name for name in jxlsys.__all__ if not hasattr(jxlsys, name)]
        assert missing == []


class TestCanonicalImports:
    """Import from canonical module locations."""

    def test_structs(self):
        from jxlsys.structs import JxlBasicInfo, JxlPixelFormat, JxlParallelRunner

    def test_enums(self):
        from jxlsys.enums import JxlDecoderStatus, JxlEncoderFrameSettingId

    def test_build_time_modules(self):
        from jxlsys.pkg_config import probe
        from jxlsys.vendor import plan_build, execute_build
        from jxlsys.resolver import discover_pkg_config, discover_lib_dir

    def test_error_hierarchy(self):
        from jxlsys.errors import JxlSysError, ResolutionError, VendorBuildError

        assert issubclass(VendorBuildError, ResolutionError)
        assert issubclass(ResolutionError, JxlSysError)
