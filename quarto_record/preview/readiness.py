"""
Readiness detection for preview servers.

A detector watches the log output of a preview server and decides when the
server is serving content. The controller feeds it raw chunks as they arrive
and acts on the signal it returns:

- ``None``: keep reading
- ``Ready(url)``: the preview has rendered at least one request
- ``Fatal(reason)``: the preview can never become ready

Detectors hold per-preview state, so a new one is created for every start.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ready:
    url: str


@dataclass(frozen=True)
class Fatal:
    reason: str


ReadinessSignal = Union[Ready, Fatal]


class ReadinessDetector:
    """Interface for deciding readiness from an opaque log stream."""

    def feed(self, chunk: str) -> Optional[ReadinessSignal]:
        raise NotImplementedError

    def end_of_stream(self) -> Optional[ReadinessSignal]:
        raise NotImplementedError


class QuartoLogDetector(ReadinessDetector):
    """Scrapes ``quarto preview`` stderr for the listening URL and the first request.

    Quarto announces ``Listening on http://localhost:PORT/`` once the server is
    bound, and logs ``GET: /path`` for every request the browser makes. The
    first request after the URL is known marks the preview as ready.
    """

    LISTENING_PATTERN = re.compile(r"Listening on (http://[^/\s]+)")
    REQUEST_MARKER = "GET:"

    def __init__(
        self,
        listening_pattern: Optional[re.Pattern] = None,
        request_marker: Optional[str] = None,
    ):
        self.listening_pattern = listening_pattern or self.LISTENING_PATTERN
        self.request_marker = request_marker or self.REQUEST_MARKER
        self.url: Optional[str] = None
        self.signal: Optional[ReadinessSignal] = None
        self._pending = ""

    def feed(self, chunk: str) -> Optional[ReadinessSignal]:
        if self.signal is not None:
            # Decided already; later output is only of diagnostic interest
            return None

        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        return self._scan(lines)

    def end_of_stream(self) -> Optional[ReadinessSignal]:
        if self.signal is not None:
            return None

        # A final line without a trailing newline still counts
        tail, self._pending = self._pending, ""
        if tail:
            signal = self._scan([tail])
            if signal is not None:
                return signal

        if self.url is None:
            reason = "Preview stderr stream ended before the server announced its URL"
        else:
            reason = f"Preview stderr stream ended before {self.url} served a request"
        self.signal = Fatal(reason)
        return self.signal

    def _scan(self, lines: List[str]) -> Optional[ReadinessSignal]:
        for line in lines:
            if self.url is None:
                match = self.listening_pattern.search(line)
                if match:
                    self.url = match.group(1)
                    logger.info(f"Preview server started at {self.url}")

            if self.url is not None and self.request_marker in line:
                logger.info("Browser has loaded the page")
                self.signal = Ready(self.url)
                return self.signal
        return None


DetectorFactory = Callable[[], ReadinessDetector]
