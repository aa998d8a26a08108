"""
Domain exceptions.

Services and the access layer raise these; ``lamr.main`` registers handlers
that turn them into HTTP responses. Raw store or JWT exceptions never reach
the client.
"""


class LamrError(Exception):
    """Base class carrying a human-readable message and a machine code."""
    code = "error"

    def __init__(self, message: str = None, code: str = None):
        self.message = message or self.__class__.__doc__.strip().splitlines()[0]
        if code:
            self.code = code
        super().__init__(self.message)


# ── Tokens ───────────────────────────────────────────────────────────────────

class TokenError(LamrError):
    """Invalid token."""
    code = "token_invalid"


class MissingTokenError(TokenError):
    """Access token required."""
    code = "token_missing"


class MalformedTokenError(TokenError):
    """Invalid token."""
    code = "token_malformed"


class ExpiredTokenError(TokenError):
    """Token expired."""
    code = "token_expired"


class InvalidSignatureError(TokenError):
    """Invalid token."""
    code = "token_signature_invalid"


# ── Authorization ────────────────────────────────────────────────────────────

class AccessDenied(LamrError):
    """Access denied."""
    code = "access_denied"

    def __init__(self, kind, reason, message: str = None):
        self.kind = kind
        self.reason = reason
        super().__init__(message, code=getattr(reason, "value", None))


# ── Store / request ──────────────────────────────────────────────────────────

class NotFoundError(LamrError):
    """Resource not found."""
    code = "not_found"


class ConflictError(LamrError):
    """Resource conflict."""
    code = "conflict"


class InvalidRequestError(LamrError):
    """Invalid request."""
    code = "invalid_request"


class StoreError(LamrError):
    """The store rejected or failed a write."""
    code = "store_error"


def reject_nulls(values: dict, required) -> None:
    """Raise InvalidRequestError if any ``required`` key is present with ``None``."""
    nulls = sorted(name for name in required if name in values and values[name] is None)
    if nulls:
        raise InvalidRequestError(f"Fields cannot be null: {', '.join(nulls)}")
