"""Memory manager callbacks, called through their C function pointers."""

from jxlsys.callbacks import CallbackTable, MemoryManager, PythonMemoryManager


class TestPythonMemoryManager:

    def test_alloc_free_accounting(self):
        mm = PythonMemoryManager()
        a = mm.struct.alloc(None, 100)
        b = mm.struct.alloc(None, 28)
        assert a and b and a != b
        assert mm.outstanding == 2
        assert mm.allocated_bytes == 128

        mm.struct.free(None, a)
        mm.struct.free(None, b)
        assert mm.outstanding == 0
        assert mm.total_allocations == 2

    def test_alignment(self):
        mm = PythonMemoryManager(alignment=128)
        addresses = [mm.struct.alloc(None, n) for n in (1, 3, 77)]
        assert all(address % 128 == 0 for address in addresses)

    def test_memory_is_writable(self):
        import ctypes

        mm = PythonMemoryManager()
        address = mm.struct.alloc(None, 4)
        ctypes.memmove(address, b"jxl!", 4)
        assert ctypes.string_at(address, 4) == b"jxl!"
        mm.struct.free(None, address)

    def test_free_null_is_ignored(self):
        mm = PythonMemoryManager()
        mm.struct.free(None, None)
        assert mm.outstanding == 0


class TestMemoryManager:

    def test_alloc_exception_returns_null(self):
        def alloc(size):
            raise MemoryError("budget exceeded")

        mm = MemoryManager(alloc, lambda address: None)
        assert mm.struct.alloc(None, 64) is None
        assert isinstance(mm.last_error, MemoryError)

    def test_zero_address_returns_null(self):
        mm = MemoryManager(lambda size: 0, lambda address: None)
        assert mm.struct.alloc(None, 64) is None


class TestCallbackTable:

    def test_empty_table_passes_null(self):
        assert CallbackTable().memory_manager_parameter() is None

    def test_memory_manager_parameter(self):
        mm = PythonMemoryManager()
        param = CallbackTable(memory_manager=mm).memory_manager_parameter()
        assert param._obj is mm.struct
