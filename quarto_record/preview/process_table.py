import logging
import os
import signal
from typing import Iterable, List, Optional, Set

import psutil

logger = logging.getLogger(__name__)


class ProcessTable:
    """Thin psutil wrapper for querying and signalling processes.

    Every signalling method is best-effort: processes that vanish or that we
    may not signal are logged and skipped.
    """

    def __init__(self, protected_pids: Optional[Set[int]] = None):
        self.protected_pids = protected_pids if protected_pids is not None else _self_and_ancestors()

    def find(self, pattern: str) -> List[psutil.Process]:
        """Return processes whose command line contains ``pattern``."""
        matches = []
        for proc in psutil.process_iter(["pid", "cmdline"]):
            if proc.info["pid"] in self.protected_pids:
                continue
            cmdline = proc.info.get("cmdline") or []
            if pattern in " ".join(cmdline):
                matches.append(proc)
        return matches

    def descendants(self, pid: int) -> List[psutil.Process]:
        try:
            return psutil.Process(pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    def get(self, pid: int) -> Optional[psutil.Process]:
        try:
            return psutil.Process(pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def send(self, procs: Iterable[psutil.Process], sig: int) -> int:
        """Send ``sig`` to each process, returning how many were signalled."""
        sent = 0
        for proc in procs:
            if proc.pid in self.protected_pids:
                continue
            try:
                proc.send_signal(sig)
                sent += 1
            except psutil.NoSuchProcess:
                logger.debug(f"Process {proc.pid} already exited")
            except psutil.AccessDenied:
                logger.warning(f"Not permitted to send {signal.Signals(sig).name} to process {proc.pid}")
        return sent

    def terminate(self, procs: Iterable[psutil.Process], timeout: float) -> List[psutil.Process]:
        """SIGTERM ``procs``, wait up to ``timeout``, then SIGKILL the survivors.

        Returns the processes still alive afterwards.
        """
        procs = list(procs)
        if not procs:
            return []

        self.send(procs, signal.SIGTERM)
        _, alive = psutil.wait_procs(procs, timeout=timeout)
        if not alive:
            return []

        logger.warning(
            f"Processes {[p.pid for p in alive]} ignored SIGTERM, sending SIGKILL"
        )
        self.send(alive, signal.SIGKILL)
        _, alive = psutil.wait_procs(alive, timeout=timeout)
        return alive


def _self_and_ancestors() -> Set[int]:
    pids = {os.getpid()}
    try:
        pids.update(p.pid for p in psutil.Process().parents())
    except psutil.Error as e:
        logger.debug(f"Could not list ancestors of process {os.getpid()}: {e}")
    return pids
