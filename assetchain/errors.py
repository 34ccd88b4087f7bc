"""
assetchain/errors.py

Error taxonomy shared by the ledger gateway, the command handlers and the
sensor scheduler.

Every failure that reaches an API caller carries a distinguishable ``kind``
and a human-readable message. The HTTP layer maps kinds to status codes via
``status_code``; ``retryable`` tells callers whether repeating the same
request can succeed.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AssetChainError(Exception):
    """Base error type for AssetChain failures."""

    kind: str = "internal_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": False,
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            out["details"] = self.details
        return out


class ConfigError(AssetChainError):
    """Raised at startup when required configuration is missing or invalid."""

    kind = "config_error"


class InvalidParameter(AssetChainError):
    """A caller-supplied value failed validation."""

    kind = "invalid_parameter"
    status_code = 400


class MissingField(InvalidParameter):
    """One or more required fields were absent or empty."""

    kind = "missing_field"

    def __init__(self, fields: "list[str] | tuple[str, ...]") -> None:
        names = list(fields)
        super().__init__(f"Missing required fields: {', '.join(names)}", details={"fields": names})
        self.fields = names


class NotFound(AssetChainError):
    """The queried object does not exist on the ledger."""

    kind = "not_found"
    status_code = 404


class TransactionRejected(AssetChainError):
    """The ledger reported a failed transaction or refused the request."""

    kind = "transaction_rejected"
    status_code = 422


class TransportFailure(AssetChainError):
    """The ledger node could not be reached or answered garbage."""

    kind = "transport_failure"
    status_code = 503
    retryable = True
