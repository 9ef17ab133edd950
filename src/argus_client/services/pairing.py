"""Pairing flow orchestration.

Drives generate code → wait for confirmation (countdown + polling) →
exchange → completed, with cancellation and expiry handled as races
between two periodic tasks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from argus_client.auth import AuthService
from argus_client.models.auth import utcnow
from argus_client.utils.errors import AuthError, CodeExpired

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
COUNTDOWN_INTERVAL = 1.0


# ── States ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class GeneratingCode:
    pass


@dataclass(frozen=True)
class WaitingForConfirmation:
    code: str
    expires_at: datetime


@dataclass(frozen=True)
class Confirmed:
    pass


@dataclass(frozen=True)
class ExchangingTokens:
    pass


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class Error:
    message: str
    error: AuthError | None = field(default=None, compare=False, repr=False)


PairingState = Idle | GeneratingCode | WaitingForConfirmation | Confirmed | ExchangingTokens | Completed | Error

SETTLED_STATES = (Idle, Completed, Error)


@dataclass(frozen=True, eq=False)
class PairingSession:
    """One issued code. Compared by identity so a retry never matches an old session."""
    code: str
    expires_at: datetime


def format_pairing_code(code: str | None) -> str:
    """Format as "XXX XXX" for readability."""
    if code is None:
        return "------"
    split = min(3, len(code))
    return f"{code[:split]} {code[split:]}"


def format_time_remaining(seconds: float) -> str:
    total = max(0, int(seconds))
    return f"{total // 60}:{total % 60:02d}"


class PairingStateMachine:
    """Owns the pairing session and its two periodic tasks.

    Every transition made after an ``await`` first checks that the session it
    belongs to is still the active one, so late results from a cancelled or
    superseded session are dropped.
    """

    def __init__(
        self,
        auth: AuthService,
        poll_interval: float = POLL_INTERVAL,
        countdown_interval: float = COUNTDOWN_INTERVAL,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._auth = auth
        self._poll_interval = poll_interval
        self._countdown_interval = countdown_interval
        self._now = now

        self._state: PairingState = Idle()
        self._session: PairingSession | None = None
        self._generation = 0
        self._poll_task: asyncio.Task | None = None
        self._countdown_task: asyncio.Task | None = None
        self._listeners: list[Callable[[PairingStateMachine], None]] = []
        self._settled = asyncio.Event()
        self._settled.set()
        self.time_remaining: float = 0.0

    # ── Derived state ────────────────────────────────────────────────

    @property
    def state(self) -> PairingState:
        return self._state

    @property
    def session(self) -> PairingSession | None:
        return self._session

    @property
    def is_loading(self) -> bool:
        return isinstance(self._state, (GeneratingCode, ExchangingTokens))

    @property
    def pairing_code(self) -> str | None:
        if isinstance(self._state, WaitingForConfirmation):
            return self._state.code
        return None

    @property
    def formatted_code(self) -> str:
        return format_pairing_code(self.pairing_code)

    @property
    def formatted_time_remaining(self) -> str:
        return format_time_remaining(self.time_remaining)

    @property
    def error_message(self) -> str | None:
        if isinstance(self._state, Error):
            return self._state.message
        return None

    @property
    def is_expired(self) -> bool:
        return self.time_remaining <= 0 and self.pairing_code is not None

    @property
    def is_running(self) -> bool:
        return any(task is not None and not task.done() for task in (self._poll_task, self._countdown_task))

    def subscribe(self, callback: Callable[[PairingStateMachine], None]) -> None:
        """Register a callback fired on every state or countdown change."""
        self._listeners.append(callback)

    async def wait(self) -> PairingState:
        """Wait until the flow settles (completed, failed or cancelled)."""
        await self._settled.wait()
        return self._state

    # ── Operations ───────────────────────────────────────────────────

    async def start_pairing(self) -> None:
        """Start (or restart) the flow by generating a fresh code."""
        self._stop_activities()
        self._session = None
        self._generation += 1
        generation = self._generation
        self._settled.clear()
        self._set_state(GeneratingCode())

        try:
            response = await self._auth.generate_pairing_code()
        except AuthError as e:
            if generation == self._generation:
                self._fail(e)
            return
        except Exception:
            logger.exception("Pairing code request failed")
            if generation == self._generation:
                self._fail(AuthError("Failed to generate pairing code"))
            return

        if generation != self._generation:
            logger.info("Discarding pairing code from a cancelled attempt")
            return

        session = PairingSession(code=response.code, expires_at=response.expires_at)
        self._session = session
        self.time_remaining = max(0.0, self._remaining(session))
        self._set_state(WaitingForConfirmation(code=session.code, expires_at=session.expires_at))

        self._poll_task = asyncio.create_task(self._poll_loop(session))
        self._countdown_task = asyncio.create_task(self._countdown_loop(session))

    async def retry(self) -> None:
        await self.start_pairing()

    def cancel(self) -> None:
        """Abandon the current attempt and return to Idle."""
        self._stop_activities()
        self._generation += 1
        self._session = None
        self._set_state(Idle())
        self._settled.set()

    # ── Periodic activities ──────────────────────────────────────────

    async def _poll_loop(self, session: PairingSession) -> None:
        while self._is_active(session):
            if self._remaining(session) <= 0:
                self.time_remaining = 0.0
                self._fail(CodeExpired())
                return

            try:
                status = await self._auth.check_pairing_status(session.code)
            except AuthError as e:
                # A flaky check must not abort the flow; expiry bounds the retries.
                logger.warning(f"Status check error: {e}")
            else:
                if not self._is_active(session):
                    return
                if status.confirmed:
                    self._cancel_task(self._countdown_task)
                    self._countdown_task = None
                    self._set_state(Confirmed())
                    await self._exchange(session)
                    self._poll_task = None
                    return
                if status.expired:
                    self._fail(CodeExpired())
                    return

            await asyncio.sleep(self._poll_interval)

    async def _exchange(self, session: PairingSession) -> None:
        self._set_state(ExchangingTokens())
        try:
            await self._auth.exchange_code_for_tokens(session.code)
        except AuthError as e:
            if self._is_active(session):
                self._fail(e)
            return
        except Exception:
            logger.exception("Token exchange failed")
            if self._is_active(session):
                self._fail(AuthError("Failed to complete pairing"))
            return

        if not self._is_active(session):
            return
        self._session = None
        self._set_state(Completed())
        self._settled.set()
        logger.info("Pairing completed")

    async def _countdown_loop(self, session: PairingSession) -> None:
        while self._is_active(session):
            remaining = self._remaining(session)
            self.time_remaining = max(0.0, remaining)
            self._notify()
            if remaining <= 0:
                return
            await asyncio.sleep(self._countdown_interval)

    # ── Helpers ──────────────────────────────────────────────────────

    def _remaining(self, session: PairingSession) -> float:
        return (session.expires_at - self._now()).total_seconds()

    def _is_active(self, session: PairingSession) -> bool:
        return self._session is session

    def _fail(self, error: AuthError) -> None:
        self._stop_activities()
        self._session = None
        self._set_state(Error(str(error), error=error))
        self._settled.set()
        logger.info(f"Pairing failed: {error}")

    def _stop_activities(self) -> None:
        self._cancel_task(self._poll_task)
        self._cancel_task(self._countdown_task)
        self._poll_task = None
        self._countdown_task = None

    @staticmethod
    def _cancel_task(task: asyncio.Task | None) -> None:
        # A loop stopping itself just returns; cancelling the running task
        # would turn its normal exit into a CancelledError.
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _set_state(self, state: PairingState) -> None:
        self._state = state
        self._notify()

    def _notify(self) -> None:
        for callback in self._listeners:
            callback(self)
