"""Scripted fakes for the remote record API."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from sync_engine.framework.config import EndpointConfig
from sync_engine.utils.errors import TransportError


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_rows(count: int, prefix: str = "rec", start: int = 0, status: Optional[str] = None) -> List[Dict[str, Any]]:
    return [
        {"id": f"{prefix}-{i}", "name": f"{prefix} {i}", "status": status}
        for i in range(start, start + count)
    ]


class FakeRemoteSource:
    """
    In-process stand-in for the remote API.

    Serves ``rows`` (optionally filtered by ``search`` on the name field)
    with offset paging below ``ceiling`` and cursor paging beyond it.
    ``delays`` maps a search term to a response delay, ``failures`` is a
    queue of exceptions raised by successive calls, and ``overrides`` lets a
    test replace the response for a given call number.
    """

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        ceiling: int = 2000,
        issue_cursors: bool = True,
        explicit_has_more: bool = True,
    ):
        self.rows = rows if rows is not None else []
        self.ceiling = ceiling
        self.issue_cursors = issue_cursors
        self.explicit_has_more = explicit_has_more
        self.calls: List[Dict[str, Any]] = []
        self.publishes: List[List[Dict[str, Any]]] = []
        self.delays: Dict[str, float] = {}
        self.failures: List[Exception] = []
        self.overrides: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {}
        self.publish_response: Optional[Dict[str, Any]] = None
        self.publish_failure: Optional[Exception] = None
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    def _matching(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        term = (params.get("search") or "").lower()
        rows = self.rows
        if term:
            rows = [row for row in rows if term in str(row.get("name", "")).lower()]
        status = params.get("status")
        if status:
            rows = [row for row in rows if row.get("status") == status]
        return rows

    async def fetch_page(self, endpoint: EndpointConfig, params: Dict[str, Any]) -> Dict[str, Any]:
        call_number = len(self.calls)
        self.calls.append(dict(params))

        delay = self.delays.get(params.get("search") or "", 0)
        if delay:
            await asyncio.sleep(delay)
        if self.failures:
            raise self.failures.pop(0)
        if call_number in self.overrides:
            return self.overrides[call_number](params)

        rows = self._matching(params)
        limit = int(params["limit"])
        if "cursor" in params:
            start = int(params["cursor"].split(":", 1)[1])
        else:
            start = int(params["offset"])
        batch = rows[start:start + limit]
        end = start + len(batch)

        response: Dict[str, Any] = {
            "success": True,
            endpoint.records_key: batch,
            "total": len(rows),
        }
        if self.explicit_has_more:
            response["hasMore"] = end < len(rows)
        if self.issue_cursors and end >= self.ceiling and end < len(rows):
            response["cursor"] = f"cur:{end}"
        return response

    async def publish(self, endpoint: EndpointConfig, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        self.publishes.append(list(updates))
        if self.publish_failure is not None:
            raise self.publish_failure
        by_id = {row["id"]: row for row in self.rows}
        for update in updates:
            if update["id"] in by_id:
                by_id[update["id"]]["status"] = update["status"]
        if self.publish_response is not None:
            return self.publish_response
        return {"success": True, "updatedCount": len(updates)}


def network_error(message: str = "connection reset") -> TransportError:
    return TransportError(message, transport_code="network")
