# =============================================================================
# fulltech_core/ui/notifications.py
# User-visible notifications for sync, push and offline events
# =============================================================================

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import streamlit as st


@dataclass
class Notification:
    """A notification as raised by the sync layer or the push handler."""
    title: str
    body: str
    tag: Optional[str] = None
    icon: Optional[str] = None
    actions: List[Dict[str, str]] = field(default_factory=list)
    data: Dict[str, object] = field(default_factory=dict)


class Notifier(ABC):
    """Abstract sink for user-visible notifications."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """Show a notification to the user"""
        pass


class StreamlitNotifier(Notifier):
    """Shows notifications as Streamlit toasts."""

    TAG_ICONS = {
        "sync-success": "✅",
        "sync-failed": "⚠️",
    }

    def notify(self, notification: Notification) -> None:
        st.toast(
            f"**{notification.title}**: {notification.body}",
            icon=self.TAG_ICONS.get(notification.tag or "", "🔔"),
        )
