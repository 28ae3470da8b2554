"""
Process tree termination.

Child processes started by triforge (the Host runtime, bundler watchers and
dev servers) may spawn their own children. Stopping one of them therefore
means stopping the whole tree, with escalating force.
"""

import logging
import os
import signal
from typing import List

import psutil

logger = logging.getLogger(__name__)

# Escalation phases: signal name, whether it is a kill
_PHASES = [
    {"name": "graceful", "signal": "SIGTERM", "force": False},
    {"name": "force_kill", "signal": "SIGKILL", "force": True},
]


def is_process_alive(process: psutil.Process) -> bool:
    """Safely check if a process is still alive and not a zombie."""
    try:
        if not process.is_running():
            return False
        return process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def _get_process_children(parent: psutil.Process) -> List[psutil.Process]:
    """Safely get all live descendants of a process."""
    try:
        return [child for child in parent.children(recursive=True) if is_process_alive(child)]
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        # Parent or children may have terminated during enumeration
        return []


def _apply_termination_signal(processes: List[psutil.Process], phase: dict) -> List[psutil.Process]:
    """Signal every live process and return those that were signaled."""
    signaled = []
    for process in processes:
        try:
            if not is_process_alive(process):
                continue
            if phase["force"]:
                process.kill()
            else:
                process.terminate()
            signaled.append(process)
            logger.debug(f"Sent {phase['signal']} to PID {process.pid}")
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning(f"Access denied sending {phase['signal']} to PID {process.pid}")
    return signaled


def _wait_for_termination(processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
    """Wait for processes to terminate and return any that are still alive."""
    if not processes:
        return []
    _, still_alive = psutil.wait_procs(processes, timeout=timeout)
    # Zombies are effectively terminated
    return [process for process in still_alive if is_process_alive(process)]


def _force_kill_process(pid: int) -> None:
    """Force kill a single process by PID as last resort."""
    try:
        os.kill(pid, signal.SIGKILL)
        logger.warning(f"Force killed process PID {pid}")
    except ProcessLookupError:
        pass


def terminate_process_tree(
    pid: int, name: str, graceful_timeout: float = 3.0, force_timeout: float = 2.0
) -> bool:
    """
    Terminate a process and all of its descendants.

    SIGTERM is sent to the whole tree first; whatever is still alive after
    ``graceful_timeout`` seconds is killed. This function blocks and is meant
    to run in an executor when called from the event loop.

    Args:
        pid: PID of the root process
        name: Human readable name used in log messages
        graceful_timeout: Seconds to wait after SIGTERM
        force_timeout: Seconds to wait after SIGKILL

    Returns:
        True if no process of the tree is left alive
    """
    if pid <= 0:
        logger.warning(f"Invalid PID {pid} for {name}, skipping termination")
        return True

    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {name} (PID: {pid}) already terminated")
        return True
    except psutil.AccessDenied:
        logger.warning(f"Access denied to process {name} (PID: {pid}), attempting force kill")
        _force_kill_process(pid)
        return False

    logger.debug(f"Terminating {name} (PID: {pid}) and its process tree")
    timeouts = {"graceful": graceful_timeout, "force_kill": force_timeout}
    remaining: List[psutil.Process] = []

    for phase in _PHASES:
        # Children may change between phases
        children = _get_process_children(parent)
        candidates = ([parent] if is_process_alive(parent) else []) + children
        if not candidates:
            remaining = []
            break

        signaled = _apply_termination_signal(candidates, phase)
        remaining = _wait_for_termination(signaled, timeouts[phase["name"]])
        if not remaining:
            logger.debug(f"All processes of {name} terminated in phase {phase['name']}")
            break
        logger.warning(f"Phase {phase['name']}: {len(remaining)} processes of {name} still alive")

    if remaining:
        for process in remaining:
            logger.error(f"Stubborn process of {name}: PID {process.pid}")
        return False
    return True
