"""
Operator controls for the development loop.

Two sources can steer a running session: single keystrokes on the terminal
(``m`` restarts the Host, ``q`` or Ctrl-C quits) and the SIGINT/SIGTERM
signals. Both are delivered on the event loop.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Any, Callable, Dict, Optional

from .shared_state import RuntimeState

logger = logging.getLogger(__name__)

RESTART_KEYS = ("m",)
QUIT_KEYS = ("q", "\x03")


class KeyboardControl:
    """
    Reads single keystrokes from a terminal without waiting for Enter.

    Does nothing when the input is not a TTY, e.g. under CI.
    """

    def __init__(
        self,
        on_restart: Callable[[], None],
        on_quit: Callable[[], None],
        stream: Any = None,
    ):
        self.on_restart = on_restart
        self.on_quit = on_quit
        self.stream = stream or sys.stdin
        self._fd: Optional[int] = None
        self._saved_attrs: Optional[list] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def handle_key(self, key: str) -> None:
        """Dispatch one keystroke."""
        if key in RESTART_KEYS:
            logger.debug("Restart requested from keyboard")
            self.on_restart()
        elif key in QUIT_KEYS:
            logger.debug("Quit requested from keyboard")
            self.on_quit()

    def start(self) -> bool:
        """
        Switch the terminal to character mode and start reading.

        Returns:
            True if keyboard input is being read
        """
        try:
            if not self.stream.isatty():
                return False
            fd = self.stream.fileno()
        except (AttributeError, ValueError, OSError):
            return False

        import termios
        import tty

        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._fd = fd
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(fd, self._on_readable)
        logger.debug("Keyboard control enabled")
        return True

    def _on_readable(self) -> None:
        if self._fd is None:
            return
        data = os.read(self._fd, 32)
        for key in data.decode("utf-8", errors="ignore"):
            self.handle_key(key)

    def stop(self) -> None:
        """Stop reading and restore the terminal."""
        if self._fd is None:
            return
        import termios

        if self._loop is not None:
            self._loop.remove_reader(self._fd)
        if self._saved_attrs is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
        self._fd = None
        self._saved_attrs = None
        logger.debug("Keyboard control disabled")


class SignalHandler:
    """
    Turns SIGINT and SIGTERM into a shutdown request on the runtime state.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, state: RuntimeState):
        self.state = state
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_handlers: Dict[int, Any] = {}
        self._signal_handlers_set = False

    def setup_signal_handlers(self) -> None:
        """Install the handlers on the running event loop."""
        self._loop = asyncio.get_running_loop()
        for signum in self.SIGNALS:
            try:
                self._loop.add_signal_handler(signum, self.handle_signal, signum)
            except NotImplementedError:
                # Event loops without signal support, e.g. on Windows
                self._original_handlers[signum] = signal.signal(
                    signum, lambda s, _frame: self._loop.call_soon_threadsafe(self.handle_signal, s)
                )
        self._signal_handlers_set = True
        logger.debug("Signal handlers set up")

    def cleanup_signal_handlers(self) -> None:
        """Restore the previous handlers."""
        if not self._signal_handlers_set or self._loop is None:
            return
        for signum in self.SIGNALS:
            if signum in self._original_handlers:
                signal.signal(signum, self._original_handlers.pop(signum))
            else:
                self._loop.remove_signal_handler(signum)
        self._signal_handlers_set = False
        logger.debug("Signal handlers restored")

    def handle_signal(self, signum: int) -> None:
        logger.warning(f"Signal {signum} received. Shutting down...")
        self.state.request_shutdown(0)
