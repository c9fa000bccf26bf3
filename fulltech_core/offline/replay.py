# =============================================================================
# fulltech_core/offline/replay.py
# Re-issuing queued offline actions
# =============================================================================

from __future__ import annotations
from typing import Optional
import logging

import requests

from fulltech_core.errors import ReplayError
from fulltech_core.offline.models import OfflineAction, is_success

logger = logging.getLogger(__name__)


def replay_action(
    session: requests.Session,
    action: OfflineAction,
    url: Optional[str] = None,
    body_override: Optional[bytes] = None,
) -> requests.Response:
    """
    Send a queued action verbatim.

    Args:
        session: HTTP session used for the request
        action: The queued action
        url: Absolute URL to use instead of ``action.url``
        body_override: Raw bytes sent instead of the stored body (file uploads)

    Returns:
        The 2xx response

    Raises:
        ReplayError: On network failure or a non-2xx answer
    """
    target = url or action.url
    kwargs = {"headers": action.headers or None}

    if body_override is not None:
        kwargs["data"] = body_override
    elif isinstance(action.body, (dict, list)):
        kwargs["json"] = action.body
    elif action.body is not None:
        kwargs["data"] = action.body

    try:
        response = session.request(action.method, target, **kwargs)
    except requests.RequestException as e:
        raise ReplayError(
            f"Replay of {action.method} {target} failed: {e}",
            action_id=action.id,
            retries=action.retries,
        ) from e

    if not is_success(response.status_code):
        raise ReplayError(
            f"Replay of {action.method} {target} returned HTTP {response.status_code}",
            action_id=action.id,
            retries=action.retries,
            details={"status": response.status_code},
        )

    logger.debug(f"Replayed offline action {action.id}: {action.method} {target}")
    return response
