from __future__ import annotations


class HackatimeError(RuntimeError):
    code = "hackatime_error"
    status_code = 500


class AuthenticationRequired(HackatimeError):
    code = "authentication_required"
    status_code = 401

    def __init__(self, message: str = "Not authenticated.") -> None:
        super().__init__(message)


class AuthFlowError(HackatimeError):
    code = "auth_flow_error"
    status_code = 400


class NoPendingFlow(AuthFlowError):
    code = "no_pending_flow"

    def __init__(self, message: str = "No PKCE state found. Please restart authentication.") -> None:
        super().__init__(message)


class PkceExpired(AuthFlowError):
    code = "pkce_expired"

    def __init__(self, message: str = "PKCE state expired. Please restart authentication.") -> None:
        super().__init__(message)


class StateMismatch(AuthFlowError):
    code = "state_mismatch"

    def __init__(self, message: str = "State parameter mismatch. Possible CSRF attack.") -> None:
        super().__init__(message)


class TokenExchangeFailed(AuthFlowError):
    code = "token_exchange_failed"
    status_code = 502


class InvalidToken(AuthFlowError):
    code = "invalid_token"
    status_code = 401


class CallbackError(AuthFlowError):
    code = "callback_error"


class ProfileFetchFailed(HackatimeError):
    code = "profile_fetch_failed"
    status_code = 502


class RemoteUnavailable(HackatimeError):
    code = "remote_unavailable"
    status_code = 502

    def __init__(self, message: str, *, remote_status: int | None = None) -> None:
        super().__init__(message)
        self.remote_status = remote_status


class RemoteFetchFailed(RemoteUnavailable):
    code = "remote_fetch_failed"


class RateLimited(RemoteFetchFailed):
    code = "rate_limited"
    status_code = 429

    def __init__(self, message: str, *, wait_seconds: int | None = None) -> None:
        super().__init__(message, remote_status=429)
        self.wait_seconds = wait_seconds


class ResponseParseError(HackatimeError):
    code = "response_parse_error"
    status_code = 502


class PersistenceError(HackatimeError):
    code = "persistence_error"
