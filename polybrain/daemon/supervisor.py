"""Keeps exactly one Polybrain HTTP server listening on a port.

The launcher is short-lived: it is started by the coding agent, makes
sure the server is up, then serves MCP over stdio. The server itself is
spawned detached (new session, no handle kept) so it outlives the launcher.

There is no cross-process lock. Two launchers racing through the first
probe may both spawn; the loser fails to bind and exits, and both keep
polling until the winner answers /health.

Usage:
    supervisor = ProcessSupervisor(32701)
    supervisor.ensure_running()
"""

import enum
import logging
import os
import subprocess
import sys
import time
from typing import Any, Dict, List, Optional

import httpx
import psutil

from polybrain.core.errors import PolybrainError, PortReclaimError, StartupTimeout
from polybrain.core.logs import get_server_log_path

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"
DEFAULT_HOST = "127.0.0.1"


class SupervisorState(enum.Enum):
    UNKNOWN = "unknown"
    PROBING = "probing"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


class ProcessSupervisor:
    """
    Health-probes, spawns-if-absent and reclaims the server port.

    Every wait here is bounded: probes carry ``probe_timeout`` and startup
    polling stops after ``max_attempts`` tries ``poll_interval`` apart.
    """

    def __init__(
        self,
        port: int,
        host: str = DEFAULT_HOST,
        probe_timeout: float = 2.0,
        poll_interval: float = 1.0,
        max_attempts: int = 30,
    ):
        """
        Initialize supervisor.

        Args:
            port: TCP port the server listens on
            host: Host used for health probes
            probe_timeout: Timeout for a single health probe, in seconds
            poll_interval: Delay between startup probes, in seconds
            max_attempts: Startup probes before giving up (~30s by default)
        """
        self.port = port
        self.host = host
        self.probe_timeout = probe_timeout
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.state = SupervisorState.UNKNOWN
        self.spawned_pid: Optional[int] = None

    @property
    def health_url(self) -> str:
        return f"http://{self.host}:{self.port}{HEALTH_PATH}"

    def _get_health(self) -> Optional[httpx.Response]:
        # Loopback probe; ignore HTTP_PROXY and friends
        try:
            return httpx.get(self.health_url, timeout=self.probe_timeout, trust_env=False)
        except httpx.HTTPError:
            return None

    def is_running(self) -> bool:
        """
        Check whether a healthy server answers on the port.

        Only an HTTP 200 counts. Network errors, timeouts and other statuses
        all mean "not running"; this never raises.
        """
        response = self._get_health()
        return response is not None and response.status_code == 200

    def health(self) -> Optional[Dict[str, Any]]:
        """
        Get the server's health payload.

        Returns the JSON body, or None if the server is not reachable.
        """
        response = self._get_health()
        if response is None or response.status_code != 200:
            return None
        try:
            return response.json()
        except ValueError:
            return {}

    def ensure_running(self) -> None:
        """
        Make sure a server is listening, starting one if needed.

        Raises:
            StartupTimeout: If no server became healthy within the retry budget
            PolybrainError: If the server process could not be spawned
        """
        self.state = SupervisorState.PROBING
        if self.is_running():
            logger.debug("Server already running on port %d", self.port)
            self.state = SupervisorState.RUNNING
            return

        logger.info("Server not running on port %d, starting it", self.port)
        self.state = SupervisorState.STARTING
        self._spawn()
        self._wait_until_healthy()

    def _server_command(self) -> List[str]:
        return [
            sys.executable,
            "-m",
            "polybrain.daemon.server",
            "--port",
            str(self.port),
        ]

    def _spawn(self) -> None:
        """
        Start the server detached from this process.

        start_new_session puts it in its own session so it survives the
        launcher; no Popen handle is kept. Output goes to the server log.
        """
        log_path = get_server_log_path()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(log_path, "ab") as log_file:
                process = subprocess.Popen(
                    self._server_command(),
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=log_file,
                    start_new_session=True,
                    close_fds=True,
                )
        except OSError as e:
            self.state = SupervisorState.FAILED
            logger.error("Failed to spawn server: %s", e)
            raise PolybrainError(f"Failed to spawn server process: {e}") from e

        self.spawned_pid = process.pid
        logger.debug("Spawned server pid=%d port=%d", process.pid, self.port)

    def _wait_until_healthy(self) -> None:
        for attempt in range(1, self.max_attempts + 1):
            if self.is_running():
                logger.info("Server ready on port %d after %d probe(s)", self.port, attempt)
                self.state = SupervisorState.RUNNING
                return
            if attempt < self.max_attempts:
                time.sleep(self.poll_interval)

        self.state = SupervisorState.FAILED
        logger.error("Server on port %d failed to start within timeout", self.port)
        raise StartupTimeout(self.port, self.max_attempts)

    def find_listeners(self) -> List[int]:
        """
        PIDs of processes listening on the port.

        Raises:
            PortReclaimError: If the owning processes cannot be determined
        """
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied:
            # macOS needs root for the system-wide table; scan per process
            return self._scan_processes()

        pids = set()
        for conn in connections:
            if conn.status != psutil.CONN_LISTEN or not conn.laddr:
                continue
            if conn.laddr.port != self.port:
                continue
            if conn.pid is None:
                raise PortReclaimError(
                    f"A process is listening on port {self.port} but its PID is not visible "
                    "(insufficient permissions)"
                )
            pids.add(conn.pid)
        return sorted(pids)

    def _scan_processes(self) -> List[int]:
        pids = set()
        for proc in psutil.process_iter(["pid"]):
            try:
                connections = proc.net_connections(kind="tcp")
            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                continue
            except psutil.AccessDenied:
                continue
            for conn in connections:
                if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == self.port:
                    pids.add(proc.pid)
        return sorted(pids)

    def reclaim_port(self, wait_timeout: float = 5.0) -> List[int]:
        """
        Forcibly terminate every process listening on the port.

        Works regardless of who started the listener. No graceful shutdown is
        attempted: conversation state is ephemeral.

        Args:
            wait_timeout: Seconds to wait for killed processes to exit

        Returns:
            PIDs that were killed (empty if the port was free)

        Raises:
            PortReclaimError: If a listener could not be found or killed
        """
        pids = [pid for pid in self.find_listeners() if pid != os.getpid()]
        if not pids:
            logger.info("No process listening on port %d", self.port)
            return []

        killed = []
        for pid in pids:
            try:
                proc = psutil.Process(pid)
                proc.kill()
                proc.wait(timeout=wait_timeout)
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                raise PortReclaimError(
                    f"Permission denied killing process {pid} on port {self.port}"
                ) from e
            except psutil.TimeoutExpired as e:
                raise PortReclaimError(
                    f"Process {pid} on port {self.port} did not exit within {wait_timeout}s"
                ) from e
            killed.append(pid)
            logger.info("Killed process %d listening on port %d", pid, self.port)

        self.state = SupervisorState.UNKNOWN
        return killed
