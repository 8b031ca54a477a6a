"""Caller-supplied callback tables: custom allocator and parallel runner.

A ``CallbackTable`` is given to ``Decoder`` / ``Encoder`` at creation. The
handle keeps a strong reference to it until the native handle is destroyed,
so the function pointers libjxl holds never dangle.

Memory handed out by a ``MemoryManager`` is owned by the native handle that
requested it and is only returned through the manager's ``free`` callback,
which libjxl calls itself.
"""

from __future__ import annotations

import threading
from ctypes import byref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

import numpy as np

from jxlsys.structs import JxlMemoryManager, jpegxl_alloc_func, jpegxl_free_func

if TYPE_CHECKING:
    from jxlsys.parallel import ParallelRunner

__all__ = ["MemoryManager", "PythonMemoryManager", "CallbackTable"]


class MemoryManager:
    """Wrap ``alloc(size) -> address`` / ``free(address)`` as a ``JxlMemoryManager``.

    ``alloc`` returns an integer address, or 0 on failure (libjxl then
    reports an out-of-memory error). An exception raised by ``alloc`` is
    treated the same way, since it cannot propagate through native frames.
    """

    def __init__(self, alloc: Callable[[int], int], free: Callable[[int], None]) -> None:
        self._alloc_fn = alloc
        self._free_fn = free
        self.last_error: Optional[BaseException] = None
        # CFUNCTYPE objects must stay referenced while libjxl holds the pointers
        self._c_alloc = jpegxl_alloc_func(self._alloc)
        self._c_free = jpegxl_free_func(self._free)
        self.struct = JxlMemoryManager(None, self._c_alloc, self._c_free)

    def _alloc(self, opaque: Optional[int], size: int) -> Optional[int]:
        try:
            return self._alloc_fn(size) or None
        except Exception as e:
            self.last_error = e
            return None

    def _free(self, opaque: Optional[int], address: Optional[int]) -> None:
        if address:
            self._free_fn(address)

    def as_parameter(self) -> Any:
        """``const JxlMemoryManager*`` for the create functions."""
        return byref(self.struct)


class PythonMemoryManager(MemoryManager):
    """Allocator backed by numpy arrays, tracking outstanding allocations.

    Allocations are aligned to ``alignment`` bytes. Useful for accounting
    (``outstanding``, ``allocated_bytes``) and for checking that every
    native allocation was freed when its handle was destroyed.
    """

    def __init__(self, alignment: int = 64) -> None:
        self.alignment = alignment
        self._blocks: Dict[int, np.ndarray] = {}
        self._lock = threading.Lock()
        self.total_allocations = 0
        super().__init__(self._allocate, self._release)

    def _allocate(self, size: int) -> int:
        block = np.empty(size + self.alignment, dtype=np.uint8)
        base = block.ctypes.data
        address = base + (-base % self.alignment)
        with self._lock:
            self._blocks[address] = block
            self.total_allocations += 1
        return address

    def _release(self, address: int) -> None:
        with self._lock:
            self._blocks.pop(address, None)

    @property
    def outstanding(self) -> int:
        """Number of allocations not yet freed."""
        with self._lock:
            return len(self._blocks)

    @property
    def allocated_bytes(self) -> int:
        with self._lock:
            return sum(block.nbytes - self.alignment for block in self._blocks.values())


@dataclass(frozen=True)
class CallbackTable:
    """Optional overrides for native memory and threading behaviour.

    Attributes:
        memory_manager: Custom allocator; None uses libjxl's malloc/free.
        parallel_runner: Runner for multi-threaded execution; None keeps
            libjxl's built-in single-threaded behaviour.
    """

    memory_manager: Optional[MemoryManager] = None
    parallel_runner: Optional["ParallelRunner"] = None

    def memory_manager_parameter(self) -> Any:
        if self.memory_manager is None:
            return None
        return self.memory_manager.as_parameter()
