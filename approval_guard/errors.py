"""
errors.py
=========

Exception types raised by approval-guard.

Every error carries an :class:`ErrorCode` so the command line layer can map
it to a message and an exit status without inspecting the message text.
Individual unparseable log records are never raised; they are dropped and
counted by the normalizer.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_CHAIN_ID = "INVALID_CHAIN_ID"
    INVALID_INPUT = "INVALID_INPUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    RPC_ERROR = "RPC_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_CONFIG = "INVALID_CONFIG"
    REPORT_FAILED = "REPORT_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ApprovalGuardError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = int(time.time())

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ValidationError(ApprovalGuardError):
    """Malformed address, chain id or numeric input rejected at the boundary."""

    def __init__(
        self,
        message: str,
        field: str = "value",
        code: ErrorCode = ErrorCode.INVALID_INPUT,
    ) -> None:
        super().__init__(message, code=code, details={"field": field})
        self.field = field


class ConfigError(ApprovalGuardError):
    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(
            message, code=ErrorCode.INVALID_CONFIG, details={"key": key}
        )
        self.key = key


class NetworkError(ApprovalGuardError):
    """Transport failure talking to a node or an explorer API."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.NETWORK_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class RpcError(NetworkError):
    """A JSON-RPC call failed, either at the HTTP level or in the response."""

    RETRYABLE_STATUS = (429, 502, 503, 504)

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        code = (
            ErrorCode.RATE_LIMIT_EXCEEDED
            if status_code == 429
            else ErrorCode.RPC_ERROR
        )
        super().__init__(
            message,
            code=code,
            details={"status_code": status_code, "retry_after": retry_after},
        )
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        if self.status_code in self.RETRYABLE_STATUS:
            return True
        msg = self.message.lower()
        return any(
            s in msg
            for s in (
                "timeout",
                "timed out",
                "too many requests",
                "rate limit",
                "temporarily unavailable",
                "connection error",
            )
        )
