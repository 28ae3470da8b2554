"""
Unit tests for keyboard and signal controls.
"""

import asyncio
import io
import os
import signal
from unittest.mock import Mock

import pytest

from triforge.orchestration import KeyboardControl, RuntimeState, SignalHandler


@pytest.mark.unit
class TestKeyboardControl:
    """Test cases for KeyboardControl."""

    def test_key_dispatch(self):
        on_restart, on_quit = Mock(), Mock()
        control = KeyboardControl(on_restart, on_quit, stream=io.StringIO())

        control.handle_key("m")
        assert on_restart.call_count == 1
        on_quit.assert_not_called()

        control.handle_key("q")
        control.handle_key("\x03")
        assert on_quit.call_count == 2

    def test_other_keys_are_ignored(self):
        on_restart, on_quit = Mock(), Mock()
        control = KeyboardControl(on_restart, on_quit, stream=io.StringIO())

        for key in "xM \n":
            control.handle_key(key)

        on_restart.assert_not_called()
        on_quit.assert_not_called()

    def test_start_without_terminal(self):
        control = KeyboardControl(Mock(), Mock(), stream=io.StringIO())
        assert control.start() is False
        control.stop()


@pytest.mark.unit
class TestSignalHandler:
    """Test cases for SignalHandler."""

    def test_handle_signal_requests_clean_shutdown(self):
        state = RuntimeState()
        SignalHandler(state).handle_signal(signal.SIGINT)

        assert state.shutdown_requested.is_set()
        assert state.exit_code == 0

    def test_first_exit_code_wins(self):
        state = RuntimeState()
        state.request_shutdown(1)
        SignalHandler(state).handle_signal(signal.SIGTERM)
        assert state.exit_code == 1

    @pytest.mark.asyncio
    async def test_sigterm_is_delivered_on_the_loop(self):
        state = RuntimeState()
        handler = SignalHandler(state)
        handler.setup_signal_handlers()
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(state.shutdown_requested.wait(), 2)
        finally:
            handler.cleanup_signal_handlers()

        assert state.exit_code == 0
