"""Last request / last response holder for the diagnostic dashboard.

Nothing here is persisted and nothing is validated: the most recent write
wins.
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RequestEcho(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    body: Any = None


class EchoSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    last_request: RequestEcho | None = None
    last_response: Any = Field(default=None)


class EchoCache:
    """Single-writer hand-off of the last request and response."""

    def __init__(self) -> None:
        self._request: RequestEcho | None = None
        self._response: Any = None

    def record_request(self, method: str, url: str, body: Any = None) -> None:
        self._request = RequestEcho(method=method, url=url, body=copy.deepcopy(body))

    def record_response(self, payload: Any) -> None:
        self._response = copy.deepcopy(payload)

    def snapshot(self) -> EchoSnapshot:
        return EchoSnapshot(last_request=self._request, last_response=copy.deepcopy(self._response))
