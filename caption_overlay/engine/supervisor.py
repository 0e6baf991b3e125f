"""
Engine Process Supervisor

Owns the engine subprocess: spawning it from an EngineConfig, draining its
output streams into typed events, stopping it (SIGTERM, then kill after a
grace period) and reporting how it exited.

State machine:
  STOPPED --start--> STARTING --spawned--> RUNNING --stop--> STOPPING --exit--> STOPPED
  RUNNING --unsolicited exit--> STOPPED  (reported with requested=False)

All methods must be called from the event loop that owns the supervisor.
"""

import asyncio
import contextlib
import enum
import logging
import subprocess
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from caption_overlay.config import DRAIN_GRACE_S, ENGINE_BINARY, STOP_GRACE_S

from .events import EngineEvent, EngineExited, EventDecoder
from .framer import iter_lines
from .models import EngineConfig, build_engine_args

logger = logging.getLogger(__name__)

EXIT_POLL_S = 0.05


class SupervisorState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class SpawnError(RuntimeError):
    """The engine binary could not be launched."""


class SupervisorBusyError(RuntimeError):
    """start() was called while an engine process is still alive."""


def _spawn_options() -> dict:
    """Platform specific subprocess options (hide console window on Windows)."""
    if sys.platform != "win32":
        return {}
    startupinfo = subprocess.STARTUPINFO()
    startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
    startupinfo.wShowWindow = subprocess.SW_HIDE
    return {"startupinfo": startupinfo}


class EngineSupervisor:
    """Supervises a single engine process."""

    def __init__(
        self,
        on_event: Callable[[EngineEvent], None] | None = None,
        on_diagnostic: Callable[[str], None] | None = None,
        on_exit: Callable[[EngineExited], None] | None = None,
        engine_command: Sequence[str] | None = None,
        models_dir: Path | None = None,
        stop_grace_s: float | None = None,
    ):
        """
        Initialize the supervisor.

        Args:
            on_event: Callback for each decoded stdout event, in order
            on_diagnostic: Callback for each stderr line
            on_exit: Callback when the process has exited and its output is drained
            engine_command: Executable (plus fixed leading args); defaults to ENGINE_BINARY
            models_dir: Directory holding model weights
            stop_grace_s: Seconds to wait after SIGTERM before killing
        """
        self.on_event = on_event
        self.on_diagnostic = on_diagnostic
        self.on_exit = on_exit
        self.engine_command = list(engine_command) if engine_command else [ENGINE_BINARY]
        self.models_dir = models_dir
        self.stop_grace_s = STOP_GRACE_S if stop_grace_s is None else stop_grace_s

        self._state = SupervisorState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._config: EngineConfig | None = None
        self._watcher: asyncio.Task | None = None
        self._kill_handle: asyncio.TimerHandle | None = None
        self._drain: asyncio.Future | None = None
        self._drain_handle: asyncio.TimerHandle | None = None
        self._stop_requested = False
        self._stopped = asyncio.Event()
        self._stopped.set()

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SupervisorState.RUNNING

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def config(self) -> EngineConfig | None:
        """Configuration of the live process, None when stopped."""
        return self._config

    def _set_state(self, state: SupervisorState):
        if state is not self._state:
            logger.info(f"Engine state: {self._state.value} -> {state.value}")
            self._state = state

    async def start(self, config: EngineConfig) -> None:
        """
        Spawn the engine for a configuration.

        Returns once the process is spawned (not once it produced output).

        Raises:
            SupervisorBusyError: If the supervisor is not STOPPED.
            SpawnError: If the engine could not be launched.
        """
        if self._state is not SupervisorState.STOPPED:
            raise SupervisorBusyError(f"Cannot start engine while {self._state.value}")

        try:
            cmd = self.engine_command + build_engine_args(config, self.models_dir)
        except KeyError as e:
            raise SpawnError(f"Invalid engine configuration: {e}") from e

        self._set_state(SupervisorState.STARTING)
        self._stopped.clear()
        self._stop_requested = False
        logger.info(f"Starting engine: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **_spawn_options(),
            )
        except OSError as e:
            logger.error(f"Failed to start engine: {e}")
            self._reset_stopped()
            raise SpawnError(f"Failed to launch engine '{cmd[0]}': {e}") from e
        except asyncio.CancelledError:
            self._reset_stopped()
            raise

        self._process = process
        self._config = config
        self._set_state(SupervisorState.RUNNING)
        logger.info(f"Engine started with PID: {process.pid}")

        self._watcher = asyncio.get_running_loop().create_task(self._watch(process))

        if self._stop_requested:
            logger.info("Stop was requested during startup")
            self.stop()

    def stop(self) -> None:
        """
        Ask the engine to exit.

        Idempotent: does nothing when already STOPPED or STOPPING. The
        process is killed if it has not exited after the grace period.
        Completion is observed through wait_stopped() / on_exit.
        """
        if self._state in (SupervisorState.STOPPED, SupervisorState.STOPPING):
            return

        if self._state is SupervisorState.STARTING:
            self._stop_requested = True
            return

        process = self._process
        self._set_state(SupervisorState.STOPPING)
        logger.info(f"Stopping engine (PID {process.pid})...")

        with contextlib.suppress(ProcessLookupError):
            process.terminate()

        if self._kill_handle:
            self._kill_handle.cancel()
        self._kill_handle = asyncio.get_running_loop().call_later(
            self.stop_grace_s, self._force_kill, process
        )

    async def wait_stopped(self) -> None:
        """Wait until the supervisor is STOPPED."""
        await self._stopped.wait()

    def _force_kill(self, process: asyncio.subprocess.Process):
        self._kill_handle = None
        if process.returncode is None:
            logger.warning(
                f"Engine did not exit within {self.stop_grace_s:.1f}s, force killing"
            )
            with contextlib.suppress(ProcessLookupError):
                process.kill()

        # A leftover child of the engine can keep the pipes open after it exits
        self._drain_handle = asyncio.get_running_loop().call_later(
            DRAIN_GRACE_S, self._abandon_drain
        )

    def _abandon_drain(self):
        self._drain_handle = None
        if self._drain is not None and not self._drain.done():
            logger.warning(
                f"Engine output still open {DRAIN_GRACE_S:.1f}s after kill, abandoning it"
            )
            self._drain.cancel()

    def _abort(self, process: asyncio.subprocess.Process):
        """Terminate without a stop request; the exit is reported as unsolicited."""
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        if self._kill_handle is None:
            self._kill_handle = asyncio.get_running_loop().call_later(
                self.stop_grace_s, self._force_kill, process
            )

    def _reset_stopped(self):
        self._process = None
        self._config = None
        self._set_state(SupervisorState.STOPPED)
        self._stopped.set()

    # ==========================================================================
    # Output handling
    # ==========================================================================

    async def _watch(self, process: asyncio.subprocess.Process):
        """Drain both streams, then wait for exit and report it."""
        decoder = EventDecoder()
        pumps = [
            asyncio.ensure_future(self._pump_stdout(process.stdout, decoder)),
            asyncio.ensure_future(self._pump_stderr(process.stderr)),
        ]
        drain = asyncio.gather(*pumps)
        self._drain = drain
        try:
            await asyncio.wait({drain})
            if drain.cancelled():
                code = await self._poll_exit(process)
            elif drain.exception() is not None:
                logger.error(f"Engine output handling failed: {drain.exception()!r}")
                for pump in pumps:
                    pump.cancel()
                self._abort(process)
                code = await self._poll_exit(process)
            else:
                code = await process.wait()
        except asyncio.CancelledError:
            for pump in pumps:
                pump.cancel()
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            self._finish(process.returncode, notify=False)
            raise
        finally:
            self._drain = None

        if decoder.failures:
            logger.info(
                f"Engine output: {decoder.decoded} events, {decoder.failures} undecodable lines"
            )
        self._finish(code)

    async def _poll_exit(self, process: asyncio.subprocess.Process) -> int:
        # process.wait() can block on pipes that are still open
        while process.returncode is None:
            await asyncio.sleep(EXIT_POLL_S)
        return process.returncode

    async def _pump_stdout(self, stream: asyncio.StreamReader, decoder: EventDecoder):
        async for line in iter_lines(stream):
            event = decoder.decode(line)
            if event is not None:
                self._emit(self.on_event, event)

    async def _pump_stderr(self, stream: asyncio.StreamReader):
        async for line in iter_lines(stream):
            if line.strip():
                self._emit(self.on_diagnostic, line.rstrip())

    def _finish(self, code: int | None, notify: bool = True):
        if self._kill_handle:
            self._kill_handle.cancel()
            self._kill_handle = None
        if self._drain_handle:
            self._drain_handle.cancel()
            self._drain_handle = None

        requested = self._state is SupervisorState.STOPPING
        self._watcher = None
        self._reset_stopped()

        if requested:
            logger.info(f"Engine stopped (exit code {code})")
        else:
            logger.error(f"Engine exited unexpectedly with code {code}")

        if notify:
            self._emit(self.on_exit, EngineExited(code=code, requested=requested))

    def _emit(self, callback: Callable | None, payload):
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception("Engine callback failed")
