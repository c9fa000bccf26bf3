# =============================================================================
# fulltech_core/errors/exceptions.py
# Custom Exception Hierarchy for the FULLTECH offline layer
# =============================================================================

from typing import Optional, Dict, Any


class FulltechError(Exception):
    """
    Base exception for all offline cache & sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "FT_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class StorageError(FulltechError):
    """Raised when the local database rejects an operation (quota, lock, corruption)"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# NETWORK EXCEPTIONS
# =============================================================================

class NetworkError(FulltechError):
    """Raised when a request cannot reach the server or gets a non-2xx answer"""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        if status is not None:
            details["status"] = status

        super().__init__(
            message=message,
            code="NET_001",
            details=details,
            **kwargs,
        )


class ReplayError(FulltechError):
    """Raised when a queued offline action fails to replay"""

    def __init__(
        self,
        message: str,
        action_id: Optional[str] = None,
        retries: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if action_id:
            details["action_id"] = action_id
        if retries is not None:
            details["retries"] = retries

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# ROUTING / CONFIGURATION EXCEPTIONS
# =============================================================================

class RouteRegistryError(FulltechError):
    """Raised when the mirror route registry points at an unknown collection"""

    def __init__(
        self,
        message: str,
        pattern: Optional[str] = None,
        collection: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if pattern:
            details["pattern"] = pattern
        if collection:
            details["collection"] = collection

        super().__init__(
            message=message,
            code="ROUTE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class ConfigurationError(FulltechError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
