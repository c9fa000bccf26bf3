# =============================================================================
# fulltech_core/errors/__init__.py
# Centralized Error Handling for the FULLTECH offline layer
# =============================================================================

from .exceptions import (
    FulltechError,
    StorageError,
    NetworkError,
    ReplayError,
    RouteRegistryError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "FulltechError",
    "StorageError",
    "NetworkError",
    "ReplayError",
    "RouteRegistryError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "ErrorContext",
]
