"""Parallel runners for multi-threaded encode/decode.

libjxl parallelises inside a single call through a ``JxlParallelRunner``
callback: "run ``func`` for every value in ``[start, end)`` across up to
``num_threads`` execution units, after calling ``init`` once". The call
blocks until all work items are done.

Runners:
- ``ThreadParallelRunner``: libjxl_threads' fixed-size thread pool.
- ``ResizableParallelRunner``: libjxl_threads' pool whose size can be changed
  between images (``suggest_threads`` sizes it from image dimensions).
- ``PythonParallelRunner``: implements the runner contract in Python over a
  caller-supplied ``concurrent.futures.Executor``. Work items are native
  calls, so the GIL is released while they run.

Error propagation follows the native contract: a nonzero return from
``init`` is returned unchanged, and a failure of the runner itself returns
``JXL_PARALLEL_RET_RUNNER_ERROR`` (-1). Individual work items cannot fail.

Usage:
    with ThreadParallelRunner(num_workers=8) as runner:
        with Decoder(CallbackTable(parallel_runner=runner)) as dec:
            ...
"""

from __future__ import annotations

import weakref
from abc import ABC, abstractmethod
from concurrent.futures import Executor, wait
from ctypes import c_void_p, cast
from multiprocessing import cpu_count
from typing import Any, List, Optional

from jxlsys.callbacks import MemoryManager
from jxlsys.enums import JxlParallelRetCode
from jxlsys.errors import HandleClosedError
from jxlsys.structs import JxlParallelRunner

__all__ = [
    "ParallelRunner",
    "ThreadParallelRunner",
    "ResizableParallelRunner",
    "PythonParallelRunner",
    "default_num_worker_threads",
]


class ParallelRunner(ABC):
    """A ``JxlParallelRunner`` function pointer and its opaque state.

    Must outlive every handle configured with it. Handles register themselves
    through ``attach``; a runner with open handles refuses to close.
    """

    def __init__(self) -> None:
        self._handles: "weakref.WeakSet[Any]" = weakref.WeakSet()

    def attach(self, handle: Any) -> None:
        """Record a ``Decoder``/``Encoder`` configured with this runner."""
        self._handles.add(handle)

    @property
    def in_use(self) -> bool:
        return any(not handle.closed for handle in list(self._handles))

    @property
    @abstractmethod
    def runner(self) -> Any:
        """The ``JxlParallelRunner`` function pointer."""

    @property
    @abstractmethod
    def opaque(self) -> Optional[int]:
        """``runner_opaque`` passed back to ``runner`` on every call."""

    def close(self) -> None:
        """Release runner resources. No-op by default."""

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _native_runner(lib: Any, name: str) -> Any:
    return JxlParallelRunner(cast(getattr(lib, name), c_void_p).value)


def default_num_worker_threads(lib: Any = None) -> int:
    """libjxl_threads' default worker count (hardware concurrency)."""
    if lib is None:
        from jxlsys._native import load_threads_library
        lib = load_threads_library()
    return int(lib.JxlThreadParallelRunnerDefaultNumWorkerThreads())


class _NativeRunner(ParallelRunner):
    """Shared lifetime handling for the libjxl_threads runners."""

    _runner_symbol = ""
    _destroy_symbol = ""

    def __init__(self, lib: Any, opaque: Optional[int]) -> None:
        if not opaque:
            raise MemoryError(f"{type(self).__name__}: native runner creation returned NULL")
        super().__init__()
        self._lib = lib
        self._opaque: Optional[int] = opaque
        self._runner = _native_runner(lib, self._runner_symbol)
        self._finalizer = weakref.finalize(self, getattr(lib, self._destroy_symbol), opaque)

    @property
    def runner(self) -> Any:
        return self._runner

    @property
    def opaque(self) -> Optional[int]:
        if self._opaque is None:
            raise HandleClosedError(f"{type(self).__name__} has been closed")
        return self._opaque

    @property
    def closed(self) -> bool:
        return self._opaque is None

    def close(self) -> None:
        """Destroy the native runner. Safe to call more than once.

        Raises:
            RuntimeError: If a decoder or encoder using this runner is still open.
        """
        if self._opaque is not None and self.in_use:
            raise RuntimeError(
                f"{type(self).__name__} is still attached to an open decoder or encoder; close it first"
            )
        self._finalizer()
        self._opaque = None


class ThreadParallelRunner(_NativeRunner):
    """libjxl_threads' fixed-size thread pool (``JxlThreadParallelRunner``)."""

    _runner_symbol = "JxlThreadParallelRunner"
    _destroy_symbol = "JxlThreadParallelRunnerDestroy"

    def __init__(
        self,
        num_workers: Optional[int] = None,
        memory_manager: Optional[MemoryManager] = None,
        lib: Any = None,
    ) -> None:
        if lib is None:
            from jxlsys._native import load_threads_library
            lib = load_threads_library()
        if num_workers is None:
            num_workers = default_num_worker_threads(lib)
        self.num_workers = num_workers
        self._memory_manager = memory_manager
        opaque = lib.JxlThreadParallelRunnerCreate(
            memory_manager.as_parameter() if memory_manager else None, num_workers
        )
        super().__init__(lib, opaque)


class ResizableParallelRunner(_NativeRunner):
    """libjxl_threads' resizable pool (``JxlResizableParallelRunner``)."""

    _runner_symbol = "JxlResizableParallelRunner"
    _destroy_symbol = "JxlResizableParallelRunnerDestroy"

    def __init__(self, memory_manager: Optional[MemoryManager] = None, lib: Any = None) -> None:
        if lib is None:
            from jxlsys._native import load_threads_library
            lib = load_threads_library()
        self._memory_manager = memory_manager
        opaque = lib.JxlResizableParallelRunnerCreate(
            memory_manager.as_parameter() if memory_manager else None
        )
        super().__init__(lib, opaque)

    def set_threads(self, num_threads: int) -> None:
        self._lib.JxlResizableParallelRunnerSetThreads(self.opaque, num_threads)

    def suggest_threads(self, xsize: int, ysize: int) -> int:
        """Thread count libjxl suggests for an image of this size."""
        return int(self._lib.JxlResizableParallelRunnerSuggestThreads(xsize, ysize))


class PythonParallelRunner(ParallelRunner):
    """Runner contract implemented over a caller-supplied executor.

    The range ``[start, end)`` is split into ``num_threads`` contiguous
    slices; slice ``i`` runs with ``thread_id == i``. Without an executor all
    items run serially on the calling thread with ``thread_id == 0``.

    Args:
        executor: Executor owned by the caller. Never shut down here.
        num_threads: Execution units reported to ``init``.
    """

    def __init__(self, executor: Optional[Executor] = None, num_threads: Optional[int] = None) -> None:
        if num_threads is None:
            num_threads = cpu_count() if executor is not None else 1
        if num_threads < 1:
            raise ValueError(f"num_threads must be >= 1, got {num_threads}")
        super().__init__()
        self.executor = executor
        self.num_threads = num_threads if executor is not None else 1
        self.last_error: Optional[BaseException] = None
        self._c_runner = JxlParallelRunner(self._run)

    @property
    def runner(self) -> Any:
        return self._c_runner

    @property
    def opaque(self) -> Optional[int]:
        return None

    def _run(self, runner_opaque, jpegxl_opaque, init, func, start_range, end_range) -> int:
        try:
            ret = init(jpegxl_opaque, self.num_threads)
            if ret != 0:
                return ret

            count = end_range - start_range
            if self.executor is None or self.num_threads == 1 or count <= 1:
                for value in range(start_range, end_range):
                    func(jpegxl_opaque, value, 0)
                return JxlParallelRetCode.SUCCESS

            def work(begin: int, stop: int, thread_id: int) -> None:
                for value in range(begin, stop):
                    func(jpegxl_opaque, value, thread_id)

            slices = min(self.num_threads, count)
            bounds = [start_range + (count * i) // slices for i in range(slices + 1)]
            futures: List[Any] = []
            try:
                for i in range(slices):
                    futures.append(self.executor.submit(work, bounds[i], bounds[i + 1], i))
                for future in futures:
                    future.result()
            finally:
                # jpegxl_opaque is only valid until this call returns
                wait(futures)
            return JxlParallelRetCode.SUCCESS
        except Exception as e:
            self.last_error = e
            return JxlParallelRetCode.RUNNER_ERROR
