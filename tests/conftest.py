from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from contact_insights.hubspot.errors import HubSpotRequestError
from contact_insights.utils import Throttle

Handler = Callable[[str, Optional[Dict[str, Any]], Optional[Dict[str, Any]]], Dict[str, Any]]


class FakeHubSpotClient:
    """
    Stands in for HubSpotClient. Routes by (method, path prefix); records every call.
    A handler returns the JSON body or raises.
    """

    def __init__(self) -> None:
        self.routes: List[Tuple[str, str, Handler]] = []
        self.calls: List[Dict[str, Any]] = []

    def route(self, method: str, prefix: str, handler: Handler) -> None:
        self.routes.append((method, prefix, handler))

    def _dispatch(self, method: str, path: str, params: Optional[Dict[str, Any]], payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        self.calls.append({"method": method, "path": path, "params": params, "payload": payload})
        for m, prefix, handler in self.routes:
            if m == method and path.startswith(prefix):
                return handler(path, params, payload)
        raise AssertionError(f"unexpected call {method} {path}")

    def get_json(self, *, stream: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._dispatch("GET", path, params, None)

    def post_json(self, *, stream: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._dispatch("POST", path, None, payload)

    def calls_to(self, prefix: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["path"].startswith(prefix)]


def http_error(status: int, path: str = "/x", body: str = "") -> HubSpotRequestError:
    return HubSpotRequestError(f"HTTP {status}", method="GET", path=path, status_code=status, body_excerpt=body)


@pytest.fixture
def client() -> FakeHubSpotClient:
    return FakeHubSpotClient()


@pytest.fixture
def throttle() -> Throttle:
    slept: List[float] = []
    t = Throttle(0.0, sleep=slept.append)
    return t
