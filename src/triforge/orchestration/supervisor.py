"""
Host process supervision.

The ProcessSupervisor owns the single running instance of the Host runtime:
it spawns it, forwards its output line by line, restarts it on request and
reports its exit. At most one child is alive at any time; every spawn gets a
new generation number so that output and exit notifications of a replaced
child can be told apart from the current one.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from ..models.events import ProcessEvent, ProcessEventType
from ..system import terminate_process_tree
from ..validation.exceptions import ProcessError
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)

# Child output is logged under this name, tagged by stream.
host_logger = logging.getLogger("triforge.host")


class SupervisorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    EXITED = "exited"


class ProcessSupervisor:
    """
    Spawns and restarts the Host runtime process.

    State machine: IDLE -> STARTING -> RUNNING -> (STOPPING -> STARTING)* -> EXITED.
    """

    def __init__(
        self,
        command: List[str],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        restart_timeout: float = TimeoutConstants.PROCESS_EXIT_TIMEOUT,
        on_exit: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            command: Full command line, runtime followed by the Host bundle
            cwd: Working directory of the child
            env: Host environment, layered over the current process environment
            restart_timeout: Seconds a stopped child gets before it is killed
            on_exit: Called with the exit code when the child exits on its own
        """
        self.command = list(command)
        self.cwd = Path(cwd)
        self.env = dict(env or {})
        self.restart_timeout = restart_timeout
        self.on_exit = on_exit

        self.state = SupervisorState.IDLE
        self.generation = 0
        self.exit_code: Optional[int] = None
        self.events: List[ProcessEvent] = []

        self._process: Optional[asyncio.subprocess.Process] = None
        self._readers: List[asyncio.Task] = []
        self._waiters: Dict[int, asyncio.Task] = {}
        self._requested: set = set()
        self._lock = asyncio.Lock()
        self._exited = asyncio.Event()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def running(self) -> bool:
        return self.state is SupervisorState.RUNNING

    async def start(self) -> int:
        """
        Spawn the Host process.

        Returns:
            PID of the new child

        Raises:
            ProcessError: If called in the wrong state or the spawn fails
        """
        if self.state not in (SupervisorState.IDLE, SupervisorState.STOPPING):
            raise ProcessError(f"cannot start the Host process while {self.state.value}")
        async with self._lock:
            return await self._spawn()

    async def _spawn(self) -> int:
        self.state = SupervisorState.STARTING
        self.generation += 1
        generation = self.generation
        env = {**os.environ, "FORCE_COLOR": "3", **self.env}

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=str(self.cwd),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self.state = SupervisorState.EXITED
            self.exit_code = 1
            self._exited.set()
            raise ProcessError(f"failed to start the Host process: {e}", exit_code=1) from e

        self._process = process
        self._readers = [
            asyncio.create_task(self._forward(process.stdout, "stdout", generation)),
            asyncio.create_task(self._forward(process.stderr, "stderr", generation)),
        ]
        self._waiters[generation] = asyncio.create_task(self._wait_child(process, generation))
        self.events.append(ProcessEvent(ProcessEventType.SPAWNED, generation, pid=process.pid))
        self.state = SupervisorState.RUNNING
        logger.info(f"Host process started with PID {process.pid} (generation {generation})")
        return process.pid

    async def _forward(self, stream: Optional[asyncio.StreamReader], channel: str,
                       generation: int) -> None:
        """Forward every non-blank line of one output stream as written."""
        if stream is None:
            return
        level = logging.INFO if channel == "stdout" else logging.WARNING
        while True:
            chunk = await stream.readline()
            if not chunk:
                break
            if generation != self.generation:
                break
            for line in chunk.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    host_logger.log(level, f"[{channel}] {line}")

    async def _wait_child(self, process: asyncio.subprocess.Process, generation: int) -> None:
        code = await process.wait()
        requested = generation in self._requested
        self.events.append(ProcessEvent(
            ProcessEventType.EXITED, generation, pid=process.pid, exit_code=code,
            requested=requested,
        ))
        if requested or generation != self.generation:
            logger.debug(f"Host process generation {generation} exited with code {code}")
            return

        # Let the readers drain what the child wrote before it exited
        await asyncio.gather(*self._readers, return_exceptions=True)
        if code == 0:
            logger.info(f"Host process exited with code {code}")
        else:
            logger.error(f"Host process exited with code {code}")
        self.state = SupervisorState.EXITED
        self.exit_code = code
        self._exited.set()
        if self.on_exit:
            self.on_exit(code)

    async def _terminate_current(self) -> None:
        """Detach, terminate and reap the current child."""
        process = self._process
        if process is None:
            return
        generation = self.generation
        self._requested.add(generation)
        for reader in self._readers:
            reader.cancel()
        self._readers = []

        if process.returncode is None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None, terminate_process_tree, process.pid, "Host process",
                self.restart_timeout, TimeoutConstants.TERMINATION_FORCE_TIMEOUT,
            )
        waiter = self._waiters.pop(generation, None)
        if waiter is not None:
            try:
                await asyncio.wait_for(
                    asyncio.shield(waiter),
                    self.restart_timeout + TimeoutConstants.TERMINATION_FORCE_TIMEOUT,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Host process generation {generation} did not exit in time")

    async def restart(self) -> bool:
        """
        Replace the running child with a new one.

        A restart requested while another restart is in progress is coalesced
        into it. Restarting is only possible while RUNNING.

        Returns:
            True if this call performed a restart
        """
        if self.state in (SupervisorState.STOPPING, SupervisorState.STARTING):
            logger.debug("Restart already in progress")
            return False
        if self.state is not SupervisorState.RUNNING:
            logger.debug(f"Ignoring restart while {self.state.value}")
            return False

        self.state = SupervisorState.STOPPING
        async with self._lock:
            logger.info("Restarting Host process...")
            await self._terminate_current()
            await self._spawn()
        return True

    async def stop(self) -> None:
        """Terminate the child, if any, and move to EXITED."""
        if self.state in (SupervisorState.IDLE, SupervisorState.EXITED):
            self.state = SupervisorState.EXITED
            self._exited.set()
            return
        async with self._lock:
            self.state = SupervisorState.STOPPING
            await self._terminate_current()
            self.state = SupervisorState.EXITED
            self._exited.set()
        logger.debug("Host process stopped")

    async def wait(self) -> Optional[int]:
        """Wait until the supervisor reaches EXITED and return the exit code."""
        await self._exited.wait()
        return self.exit_code
