"""
Preview lifecycle controller.

Brings up one ``quarto preview`` server at a time, waits until it has served a
page, and tears it down again with escalating force. Starting is fail-fast:
any readiness failure is raised to the caller (after the half-started server
has been stopped). Stopping never raises: a leftover process must not abort a
run, so every error on that path is logged and absorbed.
"""

import asyncio
import codecs
import logging
import signal
from typing import Awaitable, Callable, Dict, List, Optional, Set, Type, Union

import psutil

from quarto_record.config import Settings
from quarto_record.errors import (
    PreviewAlreadyRunningError,
    PreviewError,
    ReadinessTimeoutError,
    StreamEndedPrematurelyError,
)
from quarto_record.preview.process_table import ProcessTable
from quarto_record.preview.readiness import (
    DetectorFactory,
    Fatal,
    QuartoLogDetector,
    ReadinessDetector,
    ReadinessSignal,
    Ready,
)
from quarto_record.models import PreviewHandle, PreviewRequest

logger = logging.getLogger(__name__)

SpawnFn = Callable[[List[str]], Awaitable[asyncio.subprocess.Process]]

EXIT_POLL_INTERVAL = 0.05


class PreviewController:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        cwd: Optional[str] = None,
        detector_factory: DetectorFactory = QuartoLogDetector,
        process_table: Optional[ProcessTable] = None,
        spawn: Optional[SpawnFn] = None,
    ):
        self.settings = settings or Settings()
        self.cwd = cwd
        self.detector_factory = detector_factory
        self.process_table = process_table or ProcessTable()
        self._spawn = spawn or self._spawn_process

        # Every pid this controller launched or found beneath one it launched
        self.owned_pids: Set[int] = set()
        self._owned_procs: Dict[int, psutil.Process] = {}
        self.live: Optional[PreviewHandle] = None
        self.started_count = 0
        self.stopped_count = 0
        self._pumps: Dict[int, List[asyncio.Task]] = {}

    def build_args(self, request: PreviewRequest) -> List[str]:
        args = [*self.settings.quarto_command, "preview"]
        if request.target_file:
            args.append(request.target_file)
        if request.profile_name:
            args.extend(["--profile", request.profile_name])
        return args

    async def _spawn_process(self, args: List[str]) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            start_new_session=True,
        )

    async def start(self, request: PreviewRequest) -> PreviewHandle:
        """Launch a preview server and return once it has rendered a page.

        Raises:
            PreviewAlreadyRunningError: If a previous preview was not stopped.
            ReadinessTimeoutError: If the server is not ready in time.
            StreamEndedPrematurelyError: If the server closed stderr before it was ready.
            PreviewError: If the server could not be launched at all.
        """
        if self.live is not None:
            raise PreviewAlreadyRunningError(
                f"Preview {self.live.pid} is still running; stop it before starting another"
            )

        args = self.build_args(request)
        logger.info(f"Starting preview: {' '.join(args)}")
        try:
            process = await self._spawn(args)
        except OSError as e:
            raise PreviewError(f"Could not launch {args[0]}: {e}") from e

        handle = PreviewHandle(process=process, pid=process.pid, url="", request=request)
        self.live = handle
        self.owned_pids.add(process.pid)
        self.started_count += 1

        ready = asyncio.get_running_loop().create_future()
        self._pumps[process.pid] = [
            asyncio.create_task(self._drain_stdout(process.stdout)),
            asyncio.create_task(self._scan_stderr(process.stderr, self.detector_factory(), ready)),
        ]

        logger.info("Waiting for preview server to start and page to load...")
        timeout = self.settings.readiness_timeout
        try:
            handle.url = await asyncio.wait_for(self._wait_until_ready(ready), timeout=timeout)
        except asyncio.TimeoutError:
            error = ReadinessTimeoutError(
                f"Timed out after {timeout:g}s waiting for the preview server to become ready"
            )
        except BaseException:
            await self.stop(handle)
            raise
        else:
            logger.info(f"Preview ready at {handle.url} (pid {handle.pid})")
            return handle

        # wait_for cancelled the ready future, so a late signal is dropped
        await self.stop(handle)
        raise error

    async def _wait_until_ready(self, ready: asyncio.Future) -> str:
        url = await ready
        # Give the page a moment to finish rendering
        await asyncio.sleep(self.settings.settle_delay)
        return url

    async def _drain_stdout(self, stream: asyncio.StreamReader) -> None:
        # Read only so the child never blocks on a full pipe
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(self.settings.stream_chunk_size)
                if not data:
                    break
                text = decoder.decode(data)
                if text.strip():
                    logger.debug(f"Preview stdout: {text.rstrip()}")
        except Exception as e:
            logger.warning(f"Error reading preview stdout: {e}")

    async def _scan_stderr(
        self,
        stream: asyncio.StreamReader,
        detector: ReadinessDetector,
        ready: asyncio.Future,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(self.settings.stream_chunk_size)
                if not data:
                    break
                text = decoder.decode(data)
                if text.strip():
                    logger.debug(f"Preview stderr: {text.rstrip()}")
                self._resolve(ready, detector.feed(text), PreviewError)

            tail = decoder.decode(b"", final=True)
            if tail:
                self._resolve(ready, detector.feed(tail), PreviewError)
            self._resolve(ready, detector.end_of_stream(), StreamEndedPrematurelyError)
        except Exception as e:
            logger.warning(f"Error reading preview stderr: {e}")
            if not ready.done():
                ready.set_exception(PreviewError(f"Failed reading preview output: {e}"))

    @staticmethod
    def _resolve(
        ready: asyncio.Future,
        readiness: Optional[ReadinessSignal],
        fatal_error: Type[PreviewError],
    ) -> None:
        if readiness is None or ready.done():
            return
        if isinstance(readiness, Ready):
            ready.set_result(readiness.url)
        elif isinstance(readiness, Fatal):
            ready.set_exception(fatal_error(readiness.reason))

    async def stop(self, target: Union[PreviewHandle, asyncio.subprocess.Process]) -> None:
        """Make sure neither the preview nor anything it spawned survives.

        1. SIGTERM the preview, then every owned process still running
           (its descendants and leftovers of earlier previews), SIGKILL on timeout.
        2. SIGTERM anything left whose command line matches ``sweep_pattern``.
        3. SIGKILL whatever still matches after a grace period.

        Accepts a handle or a bare process. Never raises.
        """
        process = target.process if isinstance(target, PreviewHandle) else target
        pid = getattr(process, "pid", None)
        logger.info(f"Stopping preview server (pid {pid})...")

        try:
            await self._terminate_owned(process)
        except Exception as e:
            logger.warning(f"Error stopping preview process {pid}: {e}")

        if self.settings.orphan_sweep:
            await self._sweep_orphans()

        try:
            await self._release(process)
        except Exception as e:
            logger.warning(f"Error releasing preview process {pid}: {e}")
        self.stopped_count += 1

    async def _terminate_owned(self, process: asyncio.subprocess.Process) -> None:
        pid = process.pid
        # Collect descendants first; they are reparented once the preview exits
        descendants = await asyncio.to_thread(self.process_table.descendants, pid)
        for proc in descendants:
            self.owned_pids.add(proc.pid)
            self._owned_procs[proc.pid] = proc

        if process.returncode is None:
            _signal_quietly(process.terminate, pid, "SIGTERM")
            if not await _wait_for_exit(process, self.settings.terminate_timeout):
                logger.warning(f"Preview process {pid} did not exit after SIGTERM, sending SIGKILL")
                _signal_quietly(process.kill, pid, "SIGKILL")
                if not await _wait_for_exit(process, self.settings.terminate_timeout):
                    logger.warning(f"Preview process {pid} is still running after SIGKILL")
        else:
            logger.debug(f"Preview process {pid} already exited with {process.returncode}")

        # Owned processes include leftovers from earlier previews that survived their stop
        survivors = [p for p in self._owned_processes(exclude=pid) if _is_running(p)]
        if survivors:
            logger.info(f"Terminating {len(survivors)} owned process(es) after preview process {pid}")
            leftover = await asyncio.to_thread(
                self.process_table.terminate, survivors, self.settings.terminate_timeout
            )
            if leftover:
                logger.warning(f"Owned processes {[p.pid for p in leftover]} survived SIGKILL")

    def _owned_processes(self, exclude: int) -> List[psutil.Process]:
        procs = []
        for owned in sorted(self.owned_pids):
            if owned == exclude:
                continue
            proc = self._owned_procs.get(owned) or self.process_table.get(owned)
            if proc is not None:
                procs.append(proc)
        return procs

    async def _sweep_orphans(self) -> None:
        # Last resort for processes that escaped the owned set, e.g. daemonised
        # helpers. This matches across the whole process table.
        pattern = self.settings.sweep_pattern
        matches: List[psutil.Process] = []
        try:
            matches = await asyncio.to_thread(self.process_table.find, pattern)
            if matches:
                logger.info(f"Killing {len(matches)} leftover '{pattern}' process(es)...")
                self.process_table.send(matches, signal.SIGTERM)
            else:
                logger.debug(f"No leftover '{pattern}' processes found")
        except Exception as e:
            logger.warning(f"Orphan sweep for '{pattern}' failed: {e}")

        try:
            if matches:
                await asyncio.sleep(self.settings.sweep_grace)
            remaining = await asyncio.to_thread(self.process_table.find, pattern)
            if remaining:
                logger.warning(
                    f"Processes {[p.pid for p in remaining]} ignored SIGTERM, sending SIGKILL"
                )
                self.process_table.send(remaining, signal.SIGKILL)
        except Exception as e:
            logger.warning(f"Verification sweep for '{pattern}' failed: {e}")

    async def _release(self, process: asyncio.subprocess.Process) -> None:
        pid = process.pid
        tasks = self._pumps.pop(pid, [])
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self.live is not None and self.live.pid == pid:
            self.live = None

        for owned in list(self.owned_pids):
            proc = self._owned_procs.get(owned)
            alive = _is_running(proc) if proc is not None else psutil.pid_exists(owned)
            if not alive:
                self.owned_pids.discard(owned)
                self._owned_procs.pop(owned, None)

    async def aclose(self) -> None:
        """Stop the live preview, if any."""
        if self.live is not None:
            await self.stop(self.live)


async def _wait_for_exit(process: asyncio.subprocess.Process, timeout: float) -> bool:
    # Poll returncode instead of awaiting process.wait(), which also waits for
    # the pipes to close and so hangs while a descendant still holds them.
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while process.returncode is None:
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(EXIT_POLL_INTERVAL)
    return True


def _signal_quietly(send: Callable[[], None], pid: int, name: str) -> None:
    try:
        send()
    except ProcessLookupError:
        logger.debug(f"Preview process {pid} was already gone before {name}")


def _is_running(proc: psutil.Process) -> bool:
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True
