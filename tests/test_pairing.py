"""Tests for services/pairing.py — the pairing state machine."""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from keyring.errors import NoKeyringError, PasswordSetError

from conftest import FIXED_NOW

from argus_client.models.auth import PairingStatusResponse, PairResponse
from argus_client.services.pairing import (
    Completed,
    Confirmed,
    Error,
    ExchangingTokens,
    GeneratingCode,
    Idle,
    PairingStateMachine,
    WaitingForConfirmation,
    format_pairing_code,
    format_time_remaining,
)
from argus_client.utils.errors import InvalidCode, NetworkError, RateLimited

TICK = 0.01
PENDING = PairingStatusResponse(confirmed=False, expired=False)
CONFIRMED = PairingStatusResponse(confirmed=True, expired=False)
EXPIRED = PairingStatusResponse(confirmed=False, expired=True)


@pytest.fixture
def fake_auth():
    auth = MagicMock()
    auth.generate_pairing_code = AsyncMock(
        return_value=PairResponse(code="123456", expires_at=FIXED_NOW + timedelta(seconds=300))
    )
    auth.check_pairing_status = AsyncMock(return_value=PENDING)
    auth.exchange_code_for_tokens = AsyncMock(return_value=None)
    return auth


@pytest.fixture
def machine(fake_auth, clock):
    return PairingStateMachine(fake_auth, poll_interval=TICK, countdown_interval=TICK, now=clock)


def _record_states(machine):
    states = []
    machine.subscribe(lambda m: states.append(m.state) if not states or states[-1] != m.state else None)
    return states


async def _settle(machine):
    return await asyncio.wait_for(machine.wait(), timeout=2)


# ── Formatting ───────────────────────────────────────────────────────

def test_format_six_digit_code():
    assert format_pairing_code("123456") == "123 456"


def test_format_no_code():
    assert format_pairing_code(None) == "------"


@pytest.mark.parametrize("code, expected", [("", " "), ("1", "1 "), ("12", "12 "), ("123", "123 ")])
def test_format_short_codes_do_not_overflow(code, expected):
    assert format_pairing_code(code) == expected


@pytest.mark.parametrize("seconds, expected", [(0, "0:00"), (59.9, "0:59"), (300, "5:00"), (-5, "0:00")])
def test_format_time_remaining(seconds, expected):
    assert format_time_remaining(seconds) == expected


# ── Initial state ────────────────────────────────────────────────────

def test_initial_state(machine):
    assert machine.state == Idle()
    assert machine.is_loading is False
    assert machine.pairing_code is None
    assert machine.error_message is None
    assert machine.formatted_code == "------"
    assert machine.formatted_time_remaining == "0:00"
    assert machine.is_expired is False


def test_state_equality():
    assert Idle() == Idle()
    assert Error("Test") == Error("Test")
    assert Error("a") != Error("b")


# ── Start ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_start_enters_waiting_with_full_countdown(machine):
    await machine.start_pairing()

    assert machine.state == WaitingForConfirmation(code="123456", expires_at=FIXED_NOW + timedelta(seconds=300))
    assert machine.pairing_code == "123456"
    assert machine.formatted_code == "123 456"
    assert machine.time_remaining == 300
    assert machine.formatted_time_remaining == "5:00"
    assert machine.is_running is True
    machine.cancel()


@pytest.mark.asyncio
async def test_generating_code_is_loading(fake_auth, machine):
    seen = []
    machine.subscribe(lambda m: seen.append((m.state, m.is_loading)))

    await machine.start_pairing()

    assert seen[0] == (GeneratingCode(), True)
    machine.cancel()


@pytest.mark.asyncio
async def test_generate_failure_goes_to_error(fake_auth, machine):
    fake_auth.generate_pairing_code.side_effect = RateLimited()

    await machine.start_pairing()

    assert isinstance(machine.state, Error)
    assert machine.error_message == "Too many requests. Please wait and try again."
    assert machine.is_running is False
    assert await _settle(machine) == machine.state


@pytest.mark.asyncio
async def test_generate_network_failure_message(fake_auth, machine):
    fake_auth.generate_pairing_code.side_effect = NetworkError(httpx.ConnectTimeout("timed out"))

    await machine.start_pairing()

    assert machine.error_message == "Network error: timed out"


# ── Countdown ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_countdown_is_monotonic_and_stops_at_zero(machine, clock):
    await machine.start_pairing()
    assert machine.time_remaining == 300

    values = []
    machine.subscribe(lambda m: values.append(m.time_remaining))
    await asyncio.sleep(TICK * 3)
    for _ in range(4):
        clock.advance(100)
        await asyncio.sleep(TICK * 3)

    assert values[0] == 300
    assert all(later <= earlier for earlier, later in zip(values, values[1:]))
    assert values[-1] == 0
    assert min(values) == 0
    assert machine.time_remaining == 0


# ── Poll loop ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_confirmation_drives_exchange_to_completed(fake_auth, machine):
    fake_auth.check_pairing_status.side_effect = [PENDING, CONFIRMED]
    states = _record_states(machine)

    await machine.start_pairing()
    final = await _settle(machine)

    assert final == Completed()
    assert states[-4:] == [
        WaitingForConfirmation(code="123456", expires_at=FIXED_NOW + timedelta(seconds=300)),
        Confirmed(),
        ExchangingTokens(),
        Completed(),
    ]
    fake_auth.exchange_code_for_tokens.assert_awaited_once_with("123456")
    assert machine.session is None


@pytest.mark.asyncio
async def test_no_polling_after_completed(fake_auth, machine):
    fake_auth.check_pairing_status.return_value = CONFIRMED

    await machine.start_pairing()
    await _settle(machine)
    polls = fake_auth.check_pairing_status.await_count
    await asyncio.sleep(TICK * 5)

    assert polls == 1
    assert fake_auth.check_pairing_status.await_count == polls
    assert fake_auth.exchange_code_for_tokens.await_count == 1
    assert machine.state == Completed()
    assert machine.is_running is False


@pytest.mark.asyncio
async def test_exchange_failure_goes_to_error(fake_auth, machine):
    fake_auth.check_pairing_status.return_value = CONFIRMED
    fake_auth.exchange_code_for_tokens.side_effect = InvalidCode("Invalid or expired pairing code")

    await machine.start_pairing()
    final = await _settle(machine)

    assert final == Error("Invalid or expired pairing code")


@pytest.mark.asyncio
async def test_server_reported_expiry_stops_everything(fake_auth, machine):
    fake_auth.check_pairing_status.return_value = EXPIRED
    notifications = []
    machine.subscribe(lambda m: notifications.append(m.state))

    await machine.start_pairing()
    final = await _settle(machine)
    count = len(notifications)
    polls = fake_auth.check_pairing_status.await_count
    await asyncio.sleep(TICK * 5)

    assert isinstance(final, Error)
    assert "expired" in final.message
    assert len(notifications) == count
    assert fake_auth.check_pairing_status.await_count == polls
    assert machine.is_running is False


@pytest.mark.asyncio
async def test_client_observed_expiry(fake_auth, machine, clock):
    await machine.start_pairing()
    clock.advance(301)
    final = await _settle(machine)

    assert isinstance(final, Error)
    assert "expired" in final.message
    assert machine.time_remaining == 0


@pytest.mark.asyncio
async def test_transient_poll_errors_are_swallowed(fake_auth, machine):
    fake_auth.check_pairing_status.side_effect = [
        NetworkError(httpx.ReadTimeout("slow")),
        RateLimited(),
        CONFIRMED,
    ]

    await machine.start_pairing()
    final = await _settle(machine)

    assert final == Completed()
    assert fake_auth.check_pairing_status.await_count == 3


# ── Cancel / retry ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_cancel_from_idle(machine):
    machine.cancel()
    assert machine.state == Idle()
    assert machine.session is None


@pytest.mark.asyncio
async def test_cancel_while_waiting_stops_activities(fake_auth, machine):
    await machine.start_pairing()
    await asyncio.sleep(TICK * 2)

    machine.cancel()
    polls = fake_auth.check_pairing_status.await_count
    remaining = machine.time_remaining
    await asyncio.sleep(TICK * 5)

    assert machine.state == Idle()
    assert machine.session is None
    assert fake_auth.check_pairing_status.await_count == polls
    assert machine.time_remaining == remaining
    assert machine.is_running is False


@pytest.mark.asyncio
async def test_cancel_during_generation_discards_late_code(fake_auth, machine):
    release = asyncio.Event()

    async def _slow_generate():
        await release.wait()
        return PairResponse(code="999999", expires_at=FIXED_NOW + timedelta(seconds=300))

    fake_auth.generate_pairing_code.side_effect = _slow_generate

    starting = asyncio.ensure_future(machine.start_pairing())
    await asyncio.sleep(0)
    assert machine.state == GeneratingCode()

    machine.cancel()
    release.set()
    await starting

    assert machine.state == Idle()
    assert machine.session is None
    fake_auth.check_pairing_status.assert_not_called()


@pytest.mark.asyncio
async def test_cancel_during_poll_discards_late_status(fake_auth, machine):
    release = asyncio.Event()

    async def _slow_status(code):
        await release.wait()
        return CONFIRMED

    fake_auth.check_pairing_status.side_effect = _slow_status

    await machine.start_pairing()
    await asyncio.sleep(TICK)
    machine.cancel()
    release.set()
    await asyncio.sleep(TICK * 3)

    assert machine.state == Idle()
    fake_auth.exchange_code_for_tokens.assert_not_called()


@pytest.mark.asyncio
async def test_retry_after_error_issues_new_code(fake_auth, machine):
    fake_auth.generate_pairing_code.side_effect = [
        RateLimited(),
        PairResponse(code="222333", expires_at=FIXED_NOW + timedelta(seconds=300)),
    ]

    await machine.start_pairing()
    assert isinstance(machine.state, Error)

    await machine.retry()

    assert machine.pairing_code == "222333"
    assert machine.error_message is None
    machine.cancel()


@pytest.mark.asyncio
async def test_restart_replaces_running_session(fake_auth, machine):
    fake_auth.generate_pairing_code.side_effect = [
        PairResponse(code="111111", expires_at=FIXED_NOW + timedelta(seconds=300)),
        PairResponse(code="222222", expires_at=FIXED_NOW + timedelta(seconds=300)),
    ]

    await machine.start_pairing()
    first = machine.session
    await machine.start_pairing()

    assert machine.session is not first
    assert machine.pairing_code == "222222"
    await asyncio.sleep(TICK * 3)
    codes = {call.args[0] for call in fake_auth.check_pairing_status.await_args_list}
    assert codes == {"222222"}
    machine.cancel()


# ── Unexpected failures ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_keyring_failure_during_generation_goes_to_error(fake_auth, machine):
    fake_auth.generate_pairing_code.side_effect = NoKeyringError("no backend")

    await machine.start_pairing()
    final = await _settle(machine)

    assert final == Error("Failed to generate pairing code")
    assert machine.is_loading is False
    assert machine.is_running is False


@pytest.mark.asyncio
async def test_keyring_failure_during_exchange_goes_to_error(fake_auth, machine):
    fake_auth.check_pairing_status.return_value = CONFIRMED
    fake_auth.exchange_code_for_tokens.side_effect = PasswordSetError("keychain locked")

    await machine.start_pairing()
    final = await _settle(machine)

    assert final == Error("Failed to complete pairing")
    assert machine.is_loading is False
    assert machine.is_running is False


@pytest.mark.asyncio
async def test_error_state_keeps_failing_exception(fake_auth, machine):
    fake_auth.generate_pairing_code.side_effect = RateLimited()

    await machine.start_pairing()

    assert isinstance(machine.state.error, RateLimited)
    assert machine.state.error.code == "RATE_LIMITED"


@pytest.mark.asyncio
async def test_expiry_error_carries_expired_code(fake_auth, machine):
    fake_auth.check_pairing_status.return_value = EXPIRED

    await machine.start_pairing()
    final = await _settle(machine)

    assert final.error.code == "CODE_EXPIRED"
