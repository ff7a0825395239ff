from __future__ import annotations
import inspect
import logging
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..errors import SigningUnavailable
from .codec import AttendanceToken, encode
from .signing import SignatureIssuer

logger = logging.getLogger(__name__)

IssueCallback = Callable[[AttendanceToken, str], None]

ISSUE_JOB_ID = "qr-issue"
COUNTDOWN_JOB_ID = "qr-countdown"


class RotationState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class RotationScheduler:
    """
    Drives a SignatureIssuer on a fixed cadence for one event at a time.

    Owns two interval jobs on its own AsyncIOScheduler: issuance (initial delay,
    then every `interval`) and a countdown tick that only recomputes `remaining`
    for display. Both are removed together by `start` (before re-arming) and `stop`;
    `aclose` also shuts the scheduler down.
    """

    def __init__(
        self,
        issuer: SignatureIssuer,
        *,
        interval: float = 15.0,
        initial_delay: float = 0.1,
        tick: float = 0.1,
        window: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._issuer = issuer
        self.interval = interval
        self.initial_delay = initial_delay
        self.tick = tick
        self.window = window if window is not None else int(interval)
        self._clock = clock

        self._state = RotationState.IDLE
        self._event_id: Optional[int] = None
        self._generation = 0
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

        self._token: Optional[AttendanceToken] = None
        self._payload: str = ""
        self._last_issued_at: Optional[int] = None
        self._remaining: int = self.window
        self.issued_count = 0
        self._observers: list[IssueCallback] = []

    # ---- read side ----
    @property
    def state(self) -> RotationState:
        return self._state

    @property
    def active_event_id(self) -> Optional[int]:
        return self._event_id

    @property
    def current_token(self) -> Optional[AttendanceToken]:
        return self._token

    @property
    def current_payload(self) -> str:
        return self._payload

    @property
    def last_issued_at(self) -> Optional[int]:
        return self._last_issued_at

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def signer_identity(self) -> Optional[str]:
        return self._issuer.identity

    def on_issue(self, cb: IssueCallback) -> None:
        self._observers.append(cb)

    # ---- lifecycle ----
    def start(self, event_id: int) -> None:
        # old jobs must be gone before the new ones are armed
        self._remove_jobs()
        self._state = RotationState.ACTIVE
        self._event_id = int(event_id)
        gen = self._generation
        if not self._scheduler.running:
            self._scheduler.start()
        now = datetime.now(timezone.utc)
        self._scheduler.add_job(
            self._issue_job, "interval", seconds=self.interval,
            args=[gen, self._event_id], id=ISSUE_JOB_ID,
            next_run_time=now + timedelta(seconds=self.initial_delay),
            max_instances=1, coalesce=True,
        )
        self._scheduler.add_job(
            self._countdown_job, "interval", seconds=self.tick,
            args=[gen], id=COUNTDOWN_JOB_ID,
            max_instances=1, coalesce=True,
        )
        logger.info("QR rotation started for event %s (every %ss)", event_id, self.interval)

    def stop(self) -> None:
        was_active = self._state is RotationState.ACTIVE
        self._remove_jobs()
        self._state = RotationState.IDLE
        self._event_id = None
        self._token = None
        self._payload = ""
        self._last_issued_at = None
        self._remaining = self.window
        if was_active:
            logger.info("QR rotation stopped")

    async def aclose(self) -> None:
        self.stop()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def _remove_jobs(self) -> None:
        self._generation += 1
        for job_id in (ISSUE_JOB_ID, COUNTDOWN_JOB_ID):
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass

    # ---- jobs ----
    async def _issue_job(self, gen: int, event_id: int) -> None:
        if gen == self._generation:
            await self.issue_once(gen, event_id)

    async def _countdown_job(self, gen: int) -> None:
        if gen != self._generation or self._last_issued_at is None:
            return
        elapsed = int(self._clock()) - self._last_issued_at
        self._remaining = max(0, self.window - elapsed)

    async def issue_once(self, gen: int, event_id: int) -> Optional[AttendanceToken]:
        timestamp = int(self._clock())
        try:
            signature = self._issuer.sign(event_id, timestamp)
            if inspect.isawaitable(signature):
                signature = await signature
        except SigningUnavailable as exc:
            logger.warning("QR not refreshed for event %s: %s", event_id, exc)
            return None
        except Exception:
            logger.exception("signing failed for event %s; retrying next tick", event_id)
            return None

        # superseded while the signer was busy
        if gen != self._generation:
            return None

        token = AttendanceToken(event_id=event_id, timestamp=timestamp, signature=signature)
        self._token = token
        self._payload = encode(token)
        self._last_issued_at = timestamp
        self._remaining = self.window
        self.issued_count += 1
        logger.debug("QR updated: event=%s timestamp=%s", event_id, timestamp)

        for cb in list(self._observers):
            try:
                cb(token, self._payload)
            except Exception:
                logger.exception("on_issue observer failed")
        return token
