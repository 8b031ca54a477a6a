"""Decoder handle and state machine, driven by a scripted fake libjxl.

No native library is needed: ``fake_lib`` replays decoder statuses and
records every call, so the tests can check both the reported states and
that guarded operations never reached native code.
"""

import gc
import weakref

import numpy as np
import pytest

from jxlsys.callbacks import CallbackTable
from jxlsys.decoder import Decoder, DecoderState
from jxlsys.enums import JxlDecoderStatus as S
from jxlsys.errors import HandleClosedError
from jxlsys.parallel import PythonParallelRunner
from jxlsys.structs import JxlPixelFormat

RGB8 = JxlPixelFormat.make(3)


def _advance_to_basic_info(dec, fake_lib):
    fake_lib.decoder_script.append(S.BASIC_INFO)
    assert dec.process_input() == S.BASIC_INFO


class TestLifetime:
    """Exactly one destroy per created handle."""

    def test_close_destroys_once(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        dec.close()
        dec.close()
        assert fake_lib.destroyed == [0x1000]
        assert dec.closed

    def test_context_manager(self, fake_lib):
        with Decoder(lib=fake_lib) as dec:
            assert not dec.closed
        assert dec.closed
        assert fake_lib.destroyed == [0x1000]

    def test_garbage_collection_destroys(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        del dec
        gc.collect()
        assert fake_lib.destroyed == [0x1000]

    def test_use_after_close_raises(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        dec.close()
        with pytest.raises(HandleClosedError):
            dec.process_input()
        with pytest.raises(HandleClosedError):
            dec.basic_info()
        with pytest.raises(HandleClosedError):
            dec.release_input()

    def test_null_handle_raises_memory_error(self, fake_lib):
        fake_lib.create_result = None
        with pytest.raises(MemoryError):
            Decoder(lib=fake_lib)
        assert fake_lib.destroyed == []

    def test_runner_from_callback_table(self, fake_lib):
        runner = PythonParallelRunner()
        with Decoder(CallbackTable(parallel_runner=runner), lib=fake_lib):
            name, args = fake_lib.calls[1]
        assert name == "JxlDecoderSetParallelRunner"
        assert args[1] is runner.runner

    def test_rejected_runner_closes_handle(self, fake_lib):
        fake_lib.runner_status = S.ERROR
        with pytest.raises(RuntimeError, match="SetParallelRunner"):
            Decoder(CallbackTable(parallel_runner=PythonParallelRunner()), lib=fake_lib)
        assert fake_lib.destroyed == [0x1000]

    def test_callback_table_outlives_decoder_object(self, fake_lib):
        runner = PythonParallelRunner()
        table = CallbackTable(parallel_runner=runner)
        dec = Decoder(table, lib=fake_lib)
        table_ref = weakref.ref(runner)
        del table, runner
        gc.collect()
        assert table_ref() is not None
        dec.close()


class TestStateMachine:
    """``process_input`` is the only transition."""

    def test_initial_state(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        assert dec.state is DecoderState.CREATED
        assert not dec.basic_info_available

    def test_full_sequence(self, fake_lib):
        script = [
            (S.NEED_MORE_INPUT, DecoderState.NEED_MORE_INPUT),
            (S.BASIC_INFO, DecoderState.BASIC_INFO),
            (S.COLOR_ENCODING, DecoderState.COLOR_ENCODING),
            (S.FRAME, DecoderState.FRAME),
            (S.NEED_IMAGE_OUT_BUFFER, DecoderState.NEED_IMAGE_OUT_BUFFER),
            (S.FULL_IMAGE, DecoderState.FULL_IMAGE),
            (S.SUCCESS, DecoderState.FINISHED),
        ]
        fake_lib.decoder_script.extend(status for status, _ in script)
        dec = Decoder(lib=fake_lib)
        for status, state in script:
            assert dec.process_input() == status
            assert dec.state is state
        assert dec.state.terminal

    def test_statuses_are_not_collapsed(self, fake_lib):
        """BASIC_INFO and COLOR_ENCODING are reported separately even back to back."""
        fake_lib.decoder_script.extend([S.BASIC_INFO, S.COLOR_ENCODING])
        dec = Decoder(lib=fake_lib)
        assert dec.process_input() == S.BASIC_INFO
        assert dec.process_input() == S.COLOR_ENCODING

    def test_error_is_terminal(self, fake_lib):
        fake_lib.decoder_script.append(S.ERROR)
        dec = Decoder(lib=fake_lib)
        assert dec.process_input() == S.ERROR
        calls_before = len(fake_lib.calls)

        assert dec.process_input() == S.ERROR
        assert dec.set_input(b"\xff\x0a") == S.ERROR
        assert dec.skip_current_frame() == S.ERROR
        assert dec.state is DecoderState.ERROR
        assert len(fake_lib.calls) == calls_before

    def test_need_more_input_after_close_input_is_error(self, fake_lib):
        fake_lib.decoder_script.append(S.NEED_MORE_INPUT)
        dec = Decoder(lib=fake_lib)
        dec.set_input(b"\xff\x0a")
        dec.close_input()
        assert dec.process_input() == S.ERROR
        assert dec.state is DecoderState.ERROR

    def test_need_more_input_while_open(self, fake_lib):
        fake_lib.decoder_script.append(S.NEED_MORE_INPUT)
        dec = Decoder(lib=fake_lib)
        assert dec.process_input() == S.NEED_MORE_INPUT
        assert dec.state is DecoderState.NEED_MORE_INPUT

    def test_rewind_returns_to_created(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)
        dec.rewind()
        assert dec.state is DecoderState.CREATED
        assert not dec.basic_info_available
        assert "JxlDecoderRewind" in fake_lib.names()

    def test_reset_reapplies_runner(self, fake_lib):
        runner = PythonParallelRunner()
        dec = Decoder(CallbackTable(parallel_runner=runner), lib=fake_lib)
        dec.reset()
        assert fake_lib.names().count("JxlDecoderSetParallelRunner") == 2
        assert dec.state is DecoderState.CREATED

    def test_reset_runner_rejected_closes(self, fake_lib):
        dec = Decoder(CallbackTable(parallel_runner=PythonParallelRunner()), lib=fake_lib)
        fake_lib.runner_status = S.ERROR
        with pytest.raises(RuntimeError, match="SetParallelRunner"):
            dec.reset()
        assert dec.closed


class TestBasicInfoGuard:
    """Calls needing basic info fail without touching native code."""

    def test_guarded_calls_before_basic_info(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        calls_before = len(fake_lib.calls)

        assert dec.basic_info() == (S.ERROR, None)
        assert dec.image_out_buffer_size(RGB8) == (S.ERROR, 0)
        assert dec.set_image_out_buffer(RGB8, bytearray(24)) == S.ERROR
        assert dec.color_as_encoded_profile() == (S.ERROR, None)
        assert dec.icc_profile() == (S.ERROR, None)
        assert dec.frame_header() == (S.ERROR, None)
        assert dec.flush_image() == S.ERROR
        assert len(fake_lib.calls) == calls_before

    def test_guarded_calls_after_basic_info(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)

        status, info = dec.basic_info()
        assert status == S.SUCCESS
        assert (info.xsize, info.ysize) == (4, 2)
        assert dec.image_out_buffer_size(RGB8) == (S.SUCCESS, 24)

    def test_basic_info_survives_later_events(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)
        fake_lib.decoder_script.append(S.FRAME)
        dec.process_input()
        assert dec.basic_info()[0] == S.SUCCESS


class TestBuffers:
    """Input and output buffers stay alive while the native side may use them."""

    def test_input_retained_until_release(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        data = np.frombuffer(b"\xff\x0a" + bytes(30), dtype=np.uint8).copy()
        ref = weakref.ref(data)
        assert dec.set_input(data) == S.SUCCESS
        del data
        gc.collect()
        assert ref() is not None

        fake_lib.release_input_remaining = 7
        assert dec.release_input() == 7
        gc.collect()
        assert ref() is None

    def test_set_input_passes_address_and_size(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        dec.set_input(b"\xff\x0a\x00")
        name, args = fake_lib.calls[-1]
        assert name == "JxlDecoderSetInput"
        assert args[2] == 3

    def test_output_buffer_retained(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)
        out = np.empty((2, 4, 3), dtype=np.uint8)
        ref = weakref.ref(out)
        assert dec.set_image_out_buffer(RGB8, out) == S.SUCCESS
        del out
        gc.collect()
        assert ref() is not None

    def test_output_buffer_released_on_close(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)
        out = np.empty((2, 4, 3), dtype=np.uint8)
        ref = weakref.ref(out)
        dec.set_image_out_buffer(RGB8, out)
        dec.close()
        del out
        gc.collect()
        assert ref() is None

    def test_read_only_output_rejected(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)
        with pytest.raises(ValueError, match="writable"):
            dec.set_image_out_buffer(RGB8, bytes(24))

    def test_image_out_callback_retained(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        _advance_to_basic_info(dec, fake_lib)
        assert dec.set_image_out_callback(RGB8, lambda x, y, n, pixels: None) == S.SUCCESS
        name, args = fake_lib.calls[-1]
        assert name == "JxlDecoderSetImageOutCallback"
        assert dec._outputs["image"] is args[2]


class TestConfiguration:

    def test_subscribe_events_mask(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        assert dec.subscribe_events(S.BASIC_INFO, S.FULL_IMAGE) == S.SUCCESS
        name, args = fake_lib.calls[-1]
        assert name == "JxlDecoderSubscribeEvents"
        assert args[1] == 0x40 | 0x1000

    def test_subscribe_rejects_non_events(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        with pytest.raises(ValueError):
            dec.subscribe_events(S.NEED_MORE_INPUT)

    def test_bool_options_use_jxl_bool(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        dec.set_keep_orientation(True)
        dec.set_coalescing(False)
        assert fake_lib.calls[-2] == ("JxlDecoderSetKeepOrientation", (0x1000, 1))
        assert fake_lib.calls[-1] == ("JxlDecoderSetCoalescing", (0x1000, 0))

    def test_output_color_profile_needs_one_source(self, fake_lib):
        dec = Decoder(lib=fake_lib)
        with pytest.raises(ValueError):
            dec.set_output_color_profile()

    def test_size_hint(self, fake_lib):
        assert Decoder(lib=fake_lib).size_hint_basic_info() == 98
