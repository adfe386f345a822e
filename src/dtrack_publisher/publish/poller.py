from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable

from pydantic import BaseModel

from ..client.api import ApiClient
from ..errors import PollingAbortedError, PollingTimeoutError

log = logging.getLogger(__name__)


class PollState(str, Enum):
    POLLING = "POLLING"
    DONE = "DONE"
    TIMED_OUT = "TIMED_OUT"


class PollReport(BaseModel):
    token: str
    ticks: int
    elapsed: float


class CompletionPoller:
    """Wait until the server stops processing an uploaded BOM.

    Each tick asks whether ``token`` is still being processed. A tick that
    answers "no" ends in DONE. Otherwise the deadline is checked and, if it
    has passed, the poller ends in TIMED_OUT and raises
    :class:`PollingTimeoutError`; else it waits ``interval`` seconds and
    ticks again. ``abort`` is honoured between ticks only.

    ``clock`` and ``sleep`` exist for tests; by default the wait is
    ``abort.wait(interval)`` so an abort cuts it short.
    """

    def __init__(
        self,
        client: ApiClient,
        interval: float,
        timeout: float,
        *,
        abort: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ):
        if interval <= 0 or timeout <= 0:
            raise ValueError("polling interval and timeout must be positive")
        self.client = client
        self.interval = interval
        self.timeout = timeout
        self.abort = abort or threading.Event()
        self._clock = clock
        self._sleep = sleep
        self.state: PollState | None = None
        self.ticks = 0

    def wait(self, token: str) -> PollReport:
        self.state = PollState.POLLING
        self.ticks = 0
        start = self._clock()
        log.info("Waiting for Dependency-Track to process upload %s", token)
        while True:
            self._check_abort(token)
            self.ticks += 1
            if not self.client.is_token_being_processed(token):
                self.state = PollState.DONE
                elapsed = self._clock() - start
                log.info("Processing of %s finished after %d check(s)", token, self.ticks)
                return PollReport(token=token, ticks=self.ticks, elapsed=elapsed)
            elapsed = self._clock() - start
            if elapsed > self.timeout:
                self.state = PollState.TIMED_OUT
                raise PollingTimeoutError(token, elapsed, self.timeout)
            log.debug("Upload %s still processing (%.0fs elapsed)", token, elapsed)
            self._pause()

    def _pause(self) -> None:
        if self._sleep is not None:
            self._sleep(self.interval)
        else:
            self.abort.wait(self.interval)

    def _check_abort(self, token: str) -> None:
        if self.abort.is_set():
            raise PollingAbortedError(token)
