# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for error handling and notifications
# =============================================================================

import pytest
from unittest.mock import MagicMock

from fulltech_core.errors import (
    ErrorContext,
    NetworkError,
    StorageError,
    safe_execute,
)
from fulltech_core.errors import handlers
from fulltech_core.ui import notifications
from fulltech_core.ui.notifications import Notification, StreamlitNotifier


@pytest.fixture
def mock_st(monkeypatch):
    """Replace the Streamlit module used by handlers and notifications"""
    st = MagicMock()
    monkeypatch.setattr(handlers, "st", st)
    monkeypatch.setattr(notifications, "st", st)
    return st


class TestExceptions:
    """Test exception details"""

    def test_storage_error_to_dict(self):
        """StorageError serializes code and details"""
        error = StorageError("quota exceeded", collection="images", operation="put")

        data = error.to_dict()

        assert data["code"] == "STORE_001"
        assert data["details"] == {"collection": "images", "operation": "put"}
        assert data["recoverable"] is True

    def test_network_error_str_includes_code(self):
        """NetworkError string includes its code"""
        error = NetworkError("HTTP 503", url="http://x/api", status=503)

        assert str(error).startswith("[NET_001] HTTP 503")


class TestSafeExecute:
    """Test best-effort execution"""

    def test_returns_result(self, mock_st):
        """safe_execute returns the function result"""
        assert safe_execute(lambda x: x * 2, 21) == 42

    def test_returns_default_on_failure(self, mock_st):
        """safe_execute returns the default on failure"""
        def boom():
            raise RuntimeError("boom")

        assert safe_execute(boom, default="fallback") == "fallback"
        mock_st.error.assert_not_called()

    def test_reraise(self, mock_st):
        """safe_execute re-raises when asked"""
        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            safe_execute(boom, reraise=True)


class TestErrorContext:
    """Test the UI error context"""

    def test_recoverable_error_is_suppressed_and_shown(self, mock_st):
        """Recoverable errors are shown and suppressed"""
        with ErrorContext("Cleaning old cache"):
            raise StorageError("disk full")

        mock_st.error.assert_called_once_with("Error: disk full")

    def test_non_recoverable_error_propagates(self, mock_st):
        """Non-recoverable errors propagate"""
        with pytest.raises(StorageError):
            with ErrorContext("Cleaning old cache", recoverable=False):
                raise StorageError("disk full", recoverable=False)

        assert "Critical Error" in mock_st.error.call_args.args[0]


class TestStreamlitNotifier:
    """Test toast notifications"""

    def test_notify_shows_toast_with_tag_icon(self, mock_st):
        """Notifications show a toast with the tag icon"""
        StreamlitNotifier().notify(Notification("FULLTECH", "Datos sincronizados", tag="sync-success"))

        mock_st.toast.assert_called_once_with("**FULLTECH**: Datos sincronizados", icon="✅")

    def test_unknown_tag_uses_default_icon(self, mock_st):
        """Unknown tags fall back to the default icon"""
        StreamlitNotifier().notify(Notification("FULLTECH", "Hola"))

        assert mock_st.toast.call_args.kwargs["icon"] == "🔔"
