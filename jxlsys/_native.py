"""Load libjxl / libjxl_threads and declare their exported functions.

Libraries are located, in order:
1. ``JXLSYS_LIB_DIR`` (runtime override)
2. The directories recorded in ``jxlsys/_link.json`` at build time
3. The dynamic loader's search path (``ctypes.util.find_library``)

After loading, ``JxlDecoderVersion()`` and ``JxlEncoderVersion()`` must lie in
the bound ABI range, otherwise ``AbiVersionError`` is raised; the
declarations below are only valid for that range.

Usage:
    lib = load_library()
    lib.JxlDecoderVersion()          # e.g. 10003
    threads = load_threads_library()  # raises if libjxl_threads is absent
"""

from __future__ import annotations

import ctypes.util
import os
import threading
import warnings
from ctypes import CDLL, POINTER, c_char_p, c_float, c_int, c_int64, c_size_t, c_uint32, c_uint64, c_void_p
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from jxlsys.errors import AbiVersionError, JxlSysError, LibraryNotFoundError
from jxlsys.features import LIB_DIR_ENV_VAR, MAX_VERSION, MIN_VERSION, Version, format_version
from jxlsys.linkage import LinkDirectives, read_link_directives
from jxlsys.structs import (
    JXL_BOOL,
    JxlBasicInfo,
    JxlBitDepth,
    JxlBlendInfo,
    JxlColorEncoding,
    JxlExtraChannelInfo,
    JxlFrameHeader,
    JxlImageOutCallback,
    JxlMemoryManager,
    JxlParallelRunInit,
    JxlParallelRunFunction,
    JxlParallelRunner,
    JxlPixelFormat,
)
from jxlsys.vendor import shared_library_names

__all__ = [
    "load_library",
    "load_threads_library",
    "check_library_available",
    "check_threads_available",
    "library_version",
    "decode_version",
    "link_directives",
]

_enum = c_int
_dec = c_void_p  # JxlDecoder*
_enc = c_void_p  # JxlEncoder*
_fs = c_void_p  # JxlEncoderFrameSettings*
_buf = c_void_p  # const uint8_t* / void*

_lock = threading.Lock()
_lib: CDLL | None = None
_threads_lib: CDLL | None = None

# (name, restype, argtypes) for every bound libjxl export
_JXL_FUNCTIONS: Sequence[Tuple[str, Any, List[Any]]] = [
    # ---- version / signature ------------------------------------------------
    ("JxlDecoderVersion", c_uint32, []),
    ("JxlEncoderVersion", c_uint32, []),
    ("JxlSignatureCheck", _enum, [_buf, c_size_t]),
    # ---- decoder lifecycle --------------------------------------------------
    ("JxlDecoderCreate", _dec, [POINTER(JxlMemoryManager)]),
    ("JxlDecoderReset", None, [_dec]),
    ("JxlDecoderDestroy", None, [_dec]),
    ("JxlDecoderRewind", None, [_dec]),
    ("JxlDecoderSkipFrames", None, [_dec, c_size_t]),
    ("JxlDecoderSkipCurrentFrame", _enum, [_dec]),
    ("JxlDecoderSetParallelRunner", _enum, [_dec, JxlParallelRunner, c_void_p]),
    ("JxlDecoderSizeHintBasicInfo", c_size_t, [_dec]),
    ("JxlDecoderSubscribeEvents", _enum, [_dec, c_int]),
    ("JxlDecoderSetKeepOrientation", _enum, [_dec, JXL_BOOL]),
    ("JxlDecoderSetUnpremultiplyAlpha", _enum, [_dec, JXL_BOOL]),
    ("JxlDecoderSetRenderSpotcolors", _enum, [_dec, JXL_BOOL]),
    ("JxlDecoderSetCoalescing", _enum, [_dec, JXL_BOOL]),
    # ---- decoder input / state machine --------------------------------------
    ("JxlDecoderProcessInput", _enum, [_dec]),
    ("JxlDecoderSetInput", _enum, [_dec, _buf, c_size_t]),
    ("JxlDecoderReleaseInput", c_size_t, [_dec]),
    ("JxlDecoderCloseInput", None, [_dec]),
    # ---- decoder metadata ---------------------------------------------------
    ("JxlDecoderGetBasicInfo", _enum, [_dec, POINTER(JxlBasicInfo)]),
    ("JxlDecoderGetExtraChannelInfo", _enum, [_dec, c_size_t, POINTER(JxlExtraChannelInfo)]),
    ("JxlDecoderGetExtraChannelName", _enum, [_dec, c_size_t, c_void_p, c_size_t]),
    ("JxlDecoderGetColorAsEncodedProfile", _enum, [_dec, _enum, POINTER(JxlColorEncoding)]),
    ("JxlDecoderGetICCProfileSize", _enum, [_dec, _enum, POINTER(c_size_t)]),
    ("JxlDecoderGetColorAsICCProfile", _enum, [_dec, _enum, _buf, c_size_t]),
    ("JxlDecoderSetPreferredColorProfile", _enum, [_dec, POINTER(JxlColorEncoding)]),
    ("JxlDecoderSetDesiredIntensityTarget", _enum, [_dec, c_float]),
    ("JxlDecoderSetOutputColorProfile", _enum, [_dec, POINTER(JxlColorEncoding), _buf, c_size_t]),
    ("JxlDecoderGetFrameHeader", _enum, [_dec, POINTER(JxlFrameHeader)]),
    ("JxlDecoderGetFrameName", _enum, [_dec, c_void_p, c_size_t]),
    ("JxlDecoderGetExtraChannelBlendInfo", _enum, [_dec, c_size_t, POINTER(JxlBlendInfo)]),
    # ---- decoder output buffers ---------------------------------------------
    ("JxlDecoderPreviewOutBufferSize", _enum, [_dec, POINTER(JxlPixelFormat), POINTER(c_size_t)]),
    ("JxlDecoderSetPreviewOutBuffer", _enum, [_dec, POINTER(JxlPixelFormat), _buf, c_size_t]),
    ("JxlDecoderImageOutBufferSize", _enum, [_dec, POINTER(JxlPixelFormat), POINTER(c_size_t)]),
    ("JxlDecoderSetImageOutBuffer", _enum, [_dec, POINTER(JxlPixelFormat), _buf, c_size_t]),
    ("JxlDecoderSetImageOutCallback", _enum, [_dec, POINTER(JxlPixelFormat), JxlImageOutCallback, c_void_p]),
    ("JxlDecoderExtraChannelBufferSize", _enum, [_dec, POINTER(JxlPixelFormat), POINTER(c_size_t), c_uint32]),
    ("JxlDecoderSetExtraChannelBuffer", _enum, [_dec, POINTER(JxlPixelFormat), _buf, c_size_t, c_uint32]),
    ("JxlDecoderSetImageOutBitDepth", _enum, [_dec, POINTER(JxlBitDepth)]),
    ("JxlDecoderFlushImage", _enum, [_dec]),
    ("JxlDecoderSetProgressiveDetail", _enum, [_dec, _enum]),
    ("JxlDecoderGetIntendedDownsamplingRatio", c_size_t, [_dec]),
    # ---- decoder JPEG reconstruction / boxes --------------------------------
    ("JxlDecoderSetJPEGBuffer", _enum, [_dec, _buf, c_size_t]),
    ("JxlDecoderReleaseJPEGBuffer", c_size_t, [_dec]),
    ("JxlDecoderSetBoxBuffer", _enum, [_dec, _buf, c_size_t]),
    ("JxlDecoderReleaseBoxBuffer", c_size_t, [_dec]),
    ("JxlDecoderSetDecompressBoxes", _enum, [_dec, JXL_BOOL]),
    ("JxlDecoderGetBoxType", _enum, [_dec, c_void_p, JXL_BOOL]),
    ("JxlDecoderGetBoxSizeRaw", _enum, [_dec, POINTER(c_uint64)]),
    # ---- encoder lifecycle --------------------------------------------------
    ("JxlEncoderCreate", _enc, [POINTER(JxlMemoryManager)]),
    ("JxlEncoderReset", None, [_enc]),
    ("JxlEncoderDestroy", None, [_enc]),
    ("JxlEncoderSetParallelRunner", _enum, [_enc, JxlParallelRunner, c_void_p]),
    ("JxlEncoderGetError", _enum, [_enc]),
    ("JxlEncoderProcessOutput", _enum, [_enc, POINTER(c_void_p), POINTER(c_size_t)]),
    # ---- encoder image metadata ---------------------------------------------
    ("JxlEncoderInitBasicInfo", None, [POINTER(JxlBasicInfo)]),
    ("JxlEncoderInitFrameHeader", None, [POINTER(JxlFrameHeader)]),
    ("JxlEncoderInitBlendInfo", None, [POINTER(JxlBlendInfo)]),
    ("JxlEncoderInitExtraChannelInfo", None, [_enum, POINTER(JxlExtraChannelInfo)]),
    ("JxlEncoderSetBasicInfo", _enum, [_enc, POINTER(JxlBasicInfo)]),
    ("JxlEncoderSetUpsamplingMode", _enum, [_enc, c_int64, c_int64]),
    ("JxlEncoderSetExtraChannelInfo", _enum, [_enc, c_size_t, POINTER(JxlExtraChannelInfo)]),
    ("JxlEncoderSetExtraChannelName", _enum, [_enc, c_size_t, c_char_p, c_size_t]),
    ("JxlEncoderSetColorEncoding", _enum, [_enc, POINTER(JxlColorEncoding)]),
    ("JxlEncoderSetICCProfile", _enum, [_enc, _buf, c_size_t]),
    ("JxlEncoderUseContainer", _enum, [_enc, JXL_BOOL]),
    ("JxlEncoderStoreJPEGMetadata", _enum, [_enc, JXL_BOOL]),
    ("JxlEncoderSetCodestreamLevel", _enum, [_enc, c_int]),
    ("JxlEncoderGetRequiredCodestreamLevel", c_int, [_enc]),
    ("JxlEncoderAllowExpertOptions", None, [_enc]),
    # ---- encoder frame settings ---------------------------------------------
    ("JxlEncoderFrameSettingsCreate", _fs, [_enc, _fs]),
    ("JxlEncoderFrameSettingsSetOption", _enum, [_fs, _enum, c_int64]),
    ("JxlEncoderFrameSettingsSetFloatOption", _enum, [_fs, _enum, c_float]),
    ("JxlEncoderSetFrameLossless", _enum, [_fs, JXL_BOOL]),
    ("JxlEncoderSetFrameDistance", _enum, [_fs, c_float]),
    ("JxlEncoderSetExtraChannelDistance", _enum, [_fs, c_size_t, c_float]),
    ("JxlEncoderDistanceFromQuality", c_float, [c_float]),
    ("JxlEncoderSetFrameHeader", _enum, [_fs, POINTER(JxlFrameHeader)]),
    ("JxlEncoderSetExtraChannelBlendInfo", _enum, [_fs, c_size_t, POINTER(JxlBlendInfo)]),
    ("JxlEncoderSetFrameName", _enum, [_fs, c_char_p]),
    ("JxlEncoderSetFrameBitDepth", _enum, [_fs, POINTER(JxlBitDepth)]),
    # ---- encoder input ------------------------------------------------------
    ("JxlEncoderAddJPEGFrame", _enum, [_fs, _buf, c_size_t]),
    ("JxlEncoderAddImageFrame", _enum, [_fs, POINTER(JxlPixelFormat), _buf, c_size_t]),
    ("JxlEncoderSetExtraChannelBuffer", _enum, [_fs, POINTER(JxlPixelFormat), _buf, c_size_t, c_uint32]),
    ("JxlEncoderAddBox", _enum, [_enc, c_char_p, _buf, c_size_t, JXL_BOOL]),
    ("JxlEncoderUseBoxes", _enum, [_enc]),
    ("JxlEncoderCloseBoxes", None, [_enc]),
    ("JxlEncoderCloseFrames", None, [_enc]),
    ("JxlEncoderCloseInput", None, [_enc]),
    # ---- color encoding helpers ---------------------------------------------
    ("JxlColorEncodingSetToSRGB", None, [POINTER(JxlColorEncoding), JXL_BOOL]),
    ("JxlColorEncodingSetToLinearSRGB", None, [POINTER(JxlColorEncoding), JXL_BOOL]),
]

_THREADS_FUNCTIONS: Sequence[Tuple[str, Any, List[Any]]] = [
    ("JxlThreadParallelRunner", c_int, [c_void_p, c_void_p, JxlParallelRunInit, JxlParallelRunFunction, c_uint32, c_uint32]),
    ("JxlThreadParallelRunnerCreate", c_void_p, [POINTER(JxlMemoryManager), c_size_t]),
    ("JxlThreadParallelRunnerDestroy", None, [c_void_p]),
    ("JxlThreadParallelRunnerDefaultNumWorkerThreads", c_size_t, []),
    ("JxlResizableParallelRunner", c_int, [c_void_p, c_void_p, JxlParallelRunInit, JxlParallelRunFunction, c_uint32, c_uint32]),
    ("JxlResizableParallelRunnerCreate", c_void_p, [POINTER(JxlMemoryManager)]),
    ("JxlResizableParallelRunnerSetThreads", None, [c_void_p, c_size_t]),
    ("JxlResizableParallelRunnerSuggestThreads", c_uint32, [c_uint64, c_uint64]),
    ("JxlResizableParallelRunnerDestroy", None, [c_void_p]),
]


def _declare(lib: CDLL, functions: Iterable[Tuple[str, Any, List[Any]]]) -> None:
    missing = []
    for name, restype, argtypes in functions:
        try:
            func = getattr(lib, name)
        except AttributeError:
            missing.append(name)
            continue
        func.restype = restype
        func.argtypes = argtypes
    if missing:
        raise AbiVersionError(
            f"{lib._name} does not export: {', '.join(missing)}. "
            f"jxlsys is bound against libjxl >={format_version(MIN_VERSION)},<{format_version(MAX_VERSION)}"
        )


def decode_version(value: int) -> Version:
    """Split a ``JxlDecoderVersion()`` value (``major*1000000 + minor*1000 + patch``)."""
    return (value // 1000000, (value // 1000) % 1000, value % 1000)


def link_directives() -> Optional[LinkDirectives]:
    return read_link_directives()


def _search_dirs() -> List[Path]:
    dirs: List[Path] = []
    env_dir = os.environ.get(LIB_DIR_ENV_VAR)
    if env_dir:
        dirs.append(Path(env_dir).expanduser())
    directives = read_link_directives()
    if directives is not None:
        dirs.extend(directives.resolved_dirs())
    return dirs


def _find_library(name: str) -> str:
    """Find the shared library file for ``name`` (``jxl`` / ``jxl_threads``)."""
    for directory in _search_dirs():
        for pattern in shared_library_names(name):
            matches = sorted(directory.glob(pattern), key=lambda p: len(p.name))
            if matches:
                return str(matches[0])

    found = ctypes.util.find_library(name)
    if found:
        directives = read_link_directives()
        if directives is not None and directives.library_dirs and name in directives.libraries:
            warnings.warn(
                f"lib{name} not found in the directories recorded at build time "
                f"({', '.join(directives.library_dirs)}); using {found} from the system search path",
                RuntimeWarning,
                stacklevel=3,
            )
        return found

    raise LibraryNotFoundError(
        f"lib{name} not found. Install libjxl {format_version(MIN_VERSION)}.x:\n"
        "  macOS: brew install jpeg-xl\n"
        "  Ubuntu: apt-get install libjxl-dev\n"
        f"or point {LIB_DIR_ENV_VAR} at a directory containing it, "
        "or reinstall with JXLSYS_VENDORED=1 to build the bundled sources."
    )


def _check_version(lib: CDLL) -> Version:
    versions = {decode_version(lib.JxlDecoderVersion()), decode_version(lib.JxlEncoderVersion())}
    for version in versions:
        if not (MIN_VERSION <= version < MAX_VERSION):
            raise AbiVersionError(
                f"Loaded {lib._name} reports version {format_version(version)}; jxlsys is bound "
                f"against >={format_version(MIN_VERSION)},<{format_version(MAX_VERSION)}"
            )
    return min(versions)


def load_library() -> CDLL:
    """Load libjxl, declare its functions and verify its ABI version."""
    global _lib
    if _lib is not None:
        return _lib

    with _lock:
        if _lib is not None:
            return _lib
        path = _find_library("jxl")
        try:
            lib = CDLL(path)
        except OSError as e:
            raise LibraryNotFoundError(f"Failed to load libjxl from {path}: {e}") from e
        _declare(lib, _JXL_FUNCTIONS)
        _check_version(lib)
        _lib = lib
    return _lib


def load_threads_library() -> CDLL:
    """Load libjxl_threads (the built-in thread pool runners)."""
    global _threads_lib
    if _threads_lib is not None:
        return _threads_lib

    load_library()
    with _lock:
        if _threads_lib is not None:
            return _threads_lib
        path = _find_library("jxl_threads")
        try:
            lib = CDLL(path)
        except OSError as e:
            raise LibraryNotFoundError(f"Failed to load libjxl_threads from {path}: {e}") from e
        _declare(lib, _THREADS_FUNCTIONS)
        _threads_lib = lib
    return _threads_lib


def library_version() -> Version:
    """Version of the loaded libjxl as ``(major, minor, patch)``."""
    return decode_version(load_library().JxlDecoderVersion())


def check_library_available() -> bool:
    """Check if a compatible libjxl can be loaded."""
    try:
        load_library()
        return True
    except JxlSysError:
        return False


def check_threads_available() -> bool:
    """Check if libjxl_threads can be loaded."""
    try:
        load_threads_library()
        return True
    except JxlSysError:
        return False
