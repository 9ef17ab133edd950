"""Error taxonomy and structured error output for the CLI."""

from __future__ import annotations

import json
import sys

from rich.console import Console

console = Console(stderr=True)


class AuthError(Exception):
    """Base class for every pairing, token and transport failure.

    ``str(error)`` is the human-readable message shown to the user.
    """

    code = "AUTH_ERROR"
    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidURL(AuthError):
    code = "INVALID_URL"
    default_message = "Invalid server URL"


class InvalidResponse(AuthError):
    code = "INVALID_RESPONSE"
    default_message = "Invalid server response"


class InvalidCode(AuthError):
    code = "INVALID_CODE"
    default_message = "Invalid or expired pairing code"


class CodeNotConfirmed(AuthError):
    code = "CODE_NOT_CONFIRMED"
    default_message = "Pairing code not yet confirmed"


class CodeExpired(AuthError):
    code = "CODE_EXPIRED"
    default_message = "Pairing code expired. Please generate a new one."


class ServerError(AuthError):
    code = "SERVER_ERROR"
    default_message = "Unknown error"


class RateLimited(AuthError):
    code = "RATE_LIMITED"
    default_message = "Too many requests. Please wait and try again."


class NotAuthenticated(AuthError):
    code = "NOT_AUTHENTICATED"
    default_message = "Not authenticated"


class SessionExpired(AuthError):
    code = "SESSION_EXPIRED"
    default_message = "Session expired. Please pair again."


class NetworkError(AuthError):
    code = "NETWORK_ERROR"

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Network error: {cause}")


# Actionable hints keyed by error code
_ERROR_HINTS: dict[str, str] = {
    "INVALID_URL": "Check the configured host and port — run `argus server show`",
    "INVALID_RESPONSE": "The server answered with something unexpected — is this an ArgusAI server?",
    "INVALID_CODE": "Generate a new code with `argus pair start`",
    "CODE_NOT_CONFIRMED": "Approve the code in the ArgusAI dashboard, then try again",
    "CODE_EXPIRED": "Generate a new code with `argus pair start`",
    "RATE_LIMITED": "Rate limited — wait a moment before retrying",
    "NOT_AUTHENTICATED": "This device is not paired — run `argus pair start`",
    "SESSION_EXPIRED": "Stored credentials were cleared — run `argus pair start`",
    "NETWORK_ERROR": "Check network connectivity — run `argus server test`",
}


def get_hint(error: Exception) -> str | None:
    """Match an error to an actionable hint."""
    code = getattr(error, "code", None)
    if code is None:
        return None
    return _ERROR_HINTS.get(code)


def handle_error(error: Exception) -> None:
    """Handle an error with structured output to stdout and human-readable output to stderr.

    Outputs a JSON error object to stdout for scripted consumers:
    {"error": true, "code": "RATE_LIMITED", "message": "...", "hint": "..."}

    Also prints a human-readable error to stderr.
    """
    message = str(error)
    hint = get_hint(error)
    code = getattr(error, "code", "RUNTIME_ERROR")

    error_obj: dict[str, object] = {
        "error": True,
        "code": code,
        "message": message,
    }
    if hint:
        error_obj["hint"] = hint

    json.dump(error_obj, sys.stdout)
    sys.stdout.write("\n")

    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")
