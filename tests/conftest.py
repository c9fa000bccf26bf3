# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import json
import pytest
import requests
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

from fulltech_core.config import OfflineConfig


BASE_URL = "http://localhost:5000"


# =============================================================================
# HTTP FAKES
# =============================================================================

def make_response(
    status: int = 200,
    body: Any = b"",
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    url: str = BASE_URL + "/",
) -> requests.Response:
    """Build a real requests.Response with the given content"""
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    response.url = url
    if json_body is not None:
        body = json.dumps(json_body)
        response.headers["Content-Type"] = "application/json"
    response._content = body.encode("utf-8") if isinstance(body, str) else body
    response.headers.update(headers or {})
    return response


class FakeSession:
    """
    Stand-in for requests.Session with canned outcomes per (method, url).

    Outcomes are consumed in order; the last one repeats. An outcome is a
    Response or an exception to raise. Unknown URLs answer 404.
    """

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self.routes: Dict[tuple, List[Any]] = {}
        self.calls: List[tuple] = []
        self.offline = False

    def add(self, method: str, path: str, *outcomes) -> None:
        url = self.base_url + path if path.startswith("/") else path
        self.routes[(method.upper(), url)] = list(outcomes)

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        method = method.upper()
        self.calls.append((method, url, kwargs))
        if self.offline:
            raise requests.ConnectionError("Network is unreachable")

        outcomes = self.routes.get((method, url.split("?")[0]))
        if not outcomes:
            return make_response(404, url=url)
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def calls_to(self, path: str, method: Optional[str] = None) -> List[tuple]:
        url = self.base_url + path
        return [
            call for call in self.calls
            if call[1].split("?")[0] == url and (method is None or call[0] == method)
        ]

    def close(self) -> None:
        pass


class FakeClock:
    """Controllable time source in epoch seconds"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def config():
    """Offline config with in-memory databases"""
    return OfflineConfig(
        base_url=BASE_URL,
        cache_db_path=":memory:",
        sw_db_path=":memory:",
        critical_resources=["/", "/static/css/index.css"],
    )


@pytest.fixture
def notifier():
    """Mock notifier recording every notification"""
    return MagicMock()


@pytest.fixture
def cache_manager(config, session, clock):
    from fulltech_core.offline.cache_manager import CacheManager

    manager = CacheManager(config, session=session, clock=clock)
    manager.init()
    yield manager
    manager.dispose()


@pytest.fixture
def connection(config):
    """Connection manager driven by set_online() instead of socket probes"""
    from fulltech_core.offline.connection_manager import ConnectionManager

    manager = ConnectionManager(config)
    manager.set_online(True)
    return manager


@pytest.fixture
def sync(cache_manager, connection, notifier, session):
    from fulltech_core.offline.sync import OfflineSync

    offline_sync = OfflineSync(cache_manager, connection, notifier=notifier, session=session)
    offline_sync.initialize()
    yield offline_sync
    offline_sync.dispose()


@pytest.fixture
def sample_products():
    return [
        {"id": "P1", "name": "Router WiFi 6", "description": "Doble banda", "category": "Redes",
         "images": [], "likeCount": 2},
        {"id": "P2", "name": "Cámara IP", "description": "Vigilancia 1080p", "category": "Seguridad",
         "images": []},
        {"id": "P3", "name": "Switch 8 puertos", "description": "Gigabit", "category": "redes",
         "images": []},
    ]
