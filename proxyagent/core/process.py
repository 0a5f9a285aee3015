"""Process supervision with readiness waiting, crash detection and group termination."""

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import psutil

from .errors import ProcessError, ProcessStartupError, ProcessTimeoutError
from .log import get_logger, log_process_event
from .types import CrashInfo

logger = get_logger(__name__)


@dataclass
class ProcessInfo:
    """Information about a running process."""

    pid: int
    command: List[str]
    start_time: float
    working_dir: Path
    env: Dict[str, str] = field(default_factory=dict)


class ProcessSupervisor:
    """Manages long-running processes with crash detection and reliable termination."""

    def __init__(self, poll_interval: float = 0.5) -> None:
        self._poll_interval = poll_interval
        self._processes: Dict[str, subprocess.Popen] = {}
        self._process_info: Dict[str, ProcessInfo] = {}
        self._monitoring_threads: Dict[str, threading.Thread] = {}
        self._streaming_threads: Dict[str, threading.Thread] = {}
        self._stop_monitoring = threading.Event()
        self._crash_state: Dict[str, CrashInfo] = {}
        self._lock = threading.Lock()

    def start(
        self,
        process_id: str,
        command: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        startup_timeout: float = 30.0,
        readiness_check: Optional[Callable[[], bool]] = None,
        inherit_console: bool = False,
    ) -> ProcessInfo:
        """Start a supervised process.

        Args:
            process_id: Unique identifier for the process
            command: Command and arguments to execute
            cwd: Working directory (optional)
            env: Environment variables (optional)
            startup_timeout: Maximum time to wait for readiness (seconds)
            readiness_check: Function to check if process is ready (optional)
            inherit_console: If True, process writes straight to our stdout/stderr.
                If False, output is captured and streamed with [process_id] prefixes.

        Returns:
            ProcessInfo object with process details

        Raises:
            ProcessStartupError: spawn failed, or the process died during startup
            ProcessTimeoutError: readiness_check did not pass within startup_timeout
        """
        with self._lock:
            if process_id in self._processes:
                raise ProcessStartupError(f"Process {process_id} is already running")

        log_process_event(
            logger, "supervisor.start", process_id=process_id, command=command
        )
        logger.debug("Starting %s: %s", process_id, " ".join(command))

        try:
            process = subprocess.Popen(
                command,
                cwd=cwd,
                env=env,
                stdout=None if inherit_console else subprocess.PIPE,
                stderr=None if inherit_console else subprocess.STDOUT,
                text=not inherit_console,
                bufsize=-1 if inherit_console else 1,
                start_new_session=True,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            log_process_event(
                logger, "supervisor.start_failed", process_id=process_id, error=str(e)
            )
            raise ProcessStartupError(
                f"Failed to start process {process_id}: {e}"
            ) from e

        process_info = ProcessInfo(
            pid=process.pid,
            command=list(command),
            start_time=time.time(),
            working_dir=cwd or Path.cwd(),
            env=env or {},
        )
        with self._lock:
            self._processes[process_id] = process
            self._process_info[process_id] = process_info
        log_process_event(
            logger, "supervisor.started", pid=process.pid, process_id=process_id
        )

        if not inherit_console:
            self._start_output_streaming(process_id, process)

        if readiness_check is not None:
            try:
                self._wait_for_readiness(process_id, readiness_check, startup_timeout)
            except (ProcessStartupError, ProcessTimeoutError):
                log_process_event(
                    logger, "supervisor.not_ready", pid=process.pid, process_id=process_id
                )
                self._kill_quietly(process_id, process)
                raise

        self._start_monitoring(process_id, process)
        return process_info

    def stop(
        self, process_id: str, graceful: bool = True, timeout: float = 10.0,
        force_kill_timeout: float = 5.0,
    ) -> None:
        """Stop a supervised process.

        1. If graceful: SIGTERM the process group and wait up to ``timeout``
        2. SIGKILL the process group and wait up to ``force_kill_timeout``
        3. Kill the whole process tree through psutil as a last resort

        Raises:
            ProcessError: the process was still alive after every attempt
        """
        with self._lock:
            process = self._processes.get(process_id)
        if process is None:
            logger.debug("Process %s not found for stop", process_id)
            return

        log_process_event(
            logger, "supervisor.stop", pid=process.pid, process_id=process_id,
            graceful=graceful,
        )
        try:
            if graceful and self._signal_and_wait(process, signal.SIGTERM, timeout):
                log_process_event(
                    logger, "supervisor.stopped", pid=process.pid,
                    process_id=process_id, method="sigterm",
                )
                return

            if graceful:
                logger.warning(
                    "Process %s (PID: %s) did not respond to SIGTERM within %ss, escalating to SIGKILL",
                    process_id,
                    process.pid,
                    timeout,
                )
            if self._signal_and_wait(process, signal.SIGKILL, force_kill_timeout):
                log_process_event(
                    logger, "supervisor.stopped", pid=process.pid,
                    process_id=process_id, method="sigkill",
                )
                return

            logger.error(
                "Process %s (PID: %s) survived SIGKILL, killing process tree",
                process_id,
                process.pid,
            )
            if kill_process_tree(process.pid, signal.SIGKILL, timeout=force_kill_timeout):
                return
            raise ProcessError(
                f"Process {process_id} (PID {process.pid}) could not be terminated",
                details={"pid": process.pid, "process_id": process_id},
            )
        finally:
            if process.poll() is not None:
                self._cleanup_process(process_id)

    def is_running(self, process_id: str) -> bool:
        """Check if process is running."""
        with self._lock:
            process = self._processes.get(process_id)
        if process is None:
            return False
        return process.poll() is None

    def get_process_info(self, process_id: str) -> Optional[ProcessInfo]:
        """Get process information."""
        with self._lock:
            return self._process_info.get(process_id)

    def list_processes(self) -> List[str]:
        """List all supervised process IDs."""
        with self._lock:
            return list(self._processes.keys())

    def stop_all(self, graceful: bool = True, timeout: float = 10.0) -> None:
        """Stop all supervised processes, logging the ones that would not die."""
        for process_id in self.list_processes():
            try:
                self.stop(process_id, graceful=graceful, timeout=timeout)
            except ProcessError as e:
                logger.error("Error stopping process %s: %s", process_id, e)
        self._stop_monitoring.set()

    def get_crash_state(self, process_id: Optional[str] = None) -> Dict[str, CrashInfo]:
        """Get crash state for one process (empty if none) or for all processes."""
        with self._lock:
            if process_id is not None:
                crash = self._crash_state.get(process_id)
                return {process_id: crash} if crash else {}
            return dict(self._crash_state)

    def clear_crash_state(self, process_id: Optional[str] = None) -> None:
        """Clear crash state for a process or all processes."""
        with self._lock:
            if process_id is not None:
                self._crash_state.pop(process_id, None)
            else:
                self._crash_state.clear()

    def _signal_and_wait(
        self, process: subprocess.Popen, sig: int, timeout: float
    ) -> bool:
        """Signal the process group and wait for the leader to be reaped."""
        try:
            if os.name != "nt":
                os.killpg(process.pid, sig)
            elif sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()
        except (OSError, ProcessLookupError) as e:
            logger.debug("Could not signal process group %s: %s", process.pid, e)
            try:
                process.send_signal(sig)
            except (OSError, ProcessLookupError):
                pass  # Already gone
        try:
            process.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    def _kill_quietly(self, process_id: str, process: subprocess.Popen) -> None:
        """Kill a process that failed startup; it is being abandoned anyway."""
        if process.poll() is None:
            self._signal_and_wait(process, signal.SIGKILL, 5.0)
        self._cleanup_process(process_id)

    def _wait_for_readiness(
        self, process_id: str, readiness_check: Callable[[], bool], timeout: float
    ) -> None:
        start_time = time.time()
        while time.time() - start_time < timeout:
            if not self.is_running(process_id):
                with self._lock:
                    process = self._processes.get(process_id)
                exit_code = process.poll() if process else None
                raise ProcessStartupError(
                    f"Process {process_id} died during startup (exit code {exit_code})",
                    details={"exit_code": exit_code},
                )
            try:
                if readiness_check():
                    log_process_event(
                        logger,
                        "supervisor.ready",
                        process_id=process_id,
                        duration=time.time() - start_time,
                    )
                    return
            except (OSError, ConnectionError, TimeoutError, ValueError, RuntimeError) as e:
                logger.debug("Readiness check failed for %s: %s", process_id, e)
            time.sleep(self._poll_interval)
        raise ProcessTimeoutError(
            f"Process {process_id} did not become ready within {timeout}s",
            timeout=timeout,
        )

    def _stream_output(self, process_id: str, process: subprocess.Popen) -> None:
        """Forward captured process output line by line with a prefix."""
        if not process.stdout:
            return
        try:
            for line in iter(process.stdout.readline, ""):
                if line.strip():
                    print(f"[{process_id}] {line.rstrip()}", flush=True)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            logger.debug("Output streaming ended for %s: %s", process_id, e)

    def _start_output_streaming(self, process_id: str, process: subprocess.Popen) -> None:
        streaming_thread = threading.Thread(
            target=self._stream_output,
            args=(process_id, process),
            name=f"OutputStreamer-{process_id}",
            daemon=True,
        )
        with self._lock:
            self._streaming_threads[process_id] = streaming_thread
        streaming_thread.start()

    def _start_monitoring(self, process_id: str, process: subprocess.Popen) -> None:
        monitor_thread = threading.Thread(
            target=self._monitor_process,
            args=(process_id, process),
            name=f"ProcessMonitor-{process_id}",
            daemon=True,
        )
        self._stop_monitoring.clear()
        with self._lock:
            self._monitoring_threads[process_id] = monitor_thread
        monitor_thread.start()

    def _monitor_process(self, process_id: str, process: subprocess.Popen) -> None:
        """Watch for unexpected exits while the process is supervised."""
        while not self._stop_monitoring.is_set():
            with self._lock:
                if self._processes.get(process_id) is not process:
                    return  # stopped on purpose
            exit_code = process.poll()
            if exit_code is not None:
                self._handle_process_exit(process_id, process, exit_code)
                return
            time.sleep(1.0)

    def _handle_process_exit(
        self, process_id: str, process: subprocess.Popen, exit_code: int
    ) -> None:
        with self._lock:
            if self._processes.get(process_id) is not process:
                return
            if exit_code == 0:
                log_process_event(
                    logger, "supervisor.exited", pid=process.pid, process_id=process_id
                )
                return
            self._crash_state[process_id] = CrashInfo(
                exit_code=exit_code,
                timestamp=time.time(),
                signal=-exit_code if exit_code < 0 else None,
            )
        log_process_event(
            logger, "supervisor.crashed", pid=process.pid,
            process_id=process_id, exit_code=exit_code,
        )
        logger.error("Process %s crashed with exit code %s", process_id, exit_code)

    def _cleanup_process(self, process_id: str) -> None:
        with self._lock:
            self._processes.pop(process_id, None)
            self._process_info.pop(process_id, None)
            self._streaming_threads.pop(process_id, None)
            self._monitoring_threads.pop(process_id, None)
        logger.debug("Removed process %s from tracking", process_id)


def get_child_pids(parent_pid: int) -> List[int]:
    """Get all descendant PIDs of a process."""
    try:
        parent = psutil.Process(parent_pid)
        return [child.pid for child in parent.children(recursive=True)]
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
        logger.debug("Could not get children for PID %s: %s", parent_pid, e)
        return []


def kill_process_tree(
    root_pid: int, signal_num: int = signal.SIGKILL, timeout: float = 5.0
) -> bool:
    """Kill an entire process tree (parent + all children).

    Returns:
        True if every process in the tree is gone afterwards
    """
    pids = [root_pid] + get_child_pids(root_pid)
    processes = []
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            proc.send_signal(signal_num)
            processes.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            logger.debug("PID %s already dead or inaccessible", pid)
    if not processes:
        return True
    _, alive = psutil.wait_procs(processes, timeout=timeout)
    if alive:
        logger.warning(
            "Processes still alive in tree rooted at %s: %s",
            root_pid,
            [proc.pid for proc in alive],
        )
    return not alive


_process_supervisor = ProcessSupervisor()


def get_process_supervisor() -> ProcessSupervisor:
    """Get the shared process supervisor."""
    return _process_supervisor


def stop_all_processes(**kwargs) -> None:
    """Stop all processes started through the shared supervisor."""
    _process_supervisor.stop_all(**kwargs)
