from __future__ import annotations

from typing import Any, Dict

from quotation_engine.ui_strings import error_message


class AppError(Exception):
    """Base of every error the HTTP layer maps to a JSON body.

    Subclasses declare their defaults as class keywords, e.g.
    ``class NotFoundError(UserActionError, code="not_found", http_status=404)``.
    The message key falls back to the code.
    """

    default_code = "system_error"
    default_http_status = 500
    default_critical = True

    def __init_subclass__(cls, code: str | None = None, http_status: int | None = None, critical: bool | None = None, **kwargs):
        super().__init_subclass__(**kwargs)
        if code is not None:
            cls.default_code = code
        if http_status is not None:
            cls.default_http_status = http_status
        if critical is not None:
            cls.default_critical = critical

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = code or self.default_code
        self.message_key = message_key or self.code
        self.http_status = http_status or self.default_http_status
        self.critical = self.default_critical if critical is None else critical
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        return error_message(self.message_key, error_message("unexpected_error", "Nao foi possivel concluir a operacao."))

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        return {"error": self.code, "message": self.user_message(), "request_id": request_id, **self.payload}


class UserActionError(AppError, code="action_invalid", http_status=400, critical=False):
    pass


class ValidationError(UserActionError, code="validation_error"):
    pass


class AuthRequiredError(UserActionError, code="auth_required", http_status=401):
    pass


class ForbiddenError(UserActionError, code="forbidden", http_status=403):
    pass


class NotFoundError(UserActionError, code="not_found", http_status=404):
    pass


class InvalidTransitionError(UserActionError, code="invalid_transition", http_status=409):
    pass


class AlreadyDecidedError(UserActionError, code="already_decided", http_status=409):
    pass


class ConcurrentUpdateError(UserActionError, code="concurrent_update", http_status=409):
    pass


class InvalidKeyError(UserActionError, code="invalid_key"):
    pass


class EmptyCommentError(ValidationError, code="empty_comment"):
    pass


class MalformedEnvelopeError(UserActionError, code="malformed_envelope", http_status=422):
    pass


class NoApproversAvailableError(UserActionError, code="no_approvers_available", http_status=422):
    pass


class SystemError(AppError, code="system_error", critical=True):
    pass
