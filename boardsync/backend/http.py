"""
boardsync HTTP Backend

Async httpx client for the boardsync API. Translates HTTP failures into
backend errors so the coordinator can roll back without knowing the
transport.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from boardsync.backend.interface import BoardBackend
from boardsync.errors import (
    BackendRejectedError,
    BackendUnavailableError,
    EntityNotFoundError,
)
from boardsync.logging import get_logger
from boardsync.models.domain import Board, Lane, WorkflowState

logger = get_logger(__name__)

REJECTED_STATUSES = (400, 409, 422)


def _lane_from_payload(data: Dict[str, Any]) -> Lane:
    return Lane(
        id=data["id"],
        board_id=data["board_id"],
        name=data["name"],
        position=int(data.get("position", 0)),
        mapped_states=list(data.get("mapped_states") or []),
        wip_limit=data.get("wip_limit"),
        is_collapsed=bool(data.get("is_collapsed", False)),
        client_key=data.get("client_key"),
        created_at=data.get("created_at") or "",
        updated_at=data.get("updated_at") or "",
    )


def _board_from_payload(data: Dict[str, Any]) -> Board:
    return Board(
        id=data["id"],
        project_id=data["project_id"],
        name=data["name"],
        board_type=data.get("board_type", "kanban"),
        is_default=bool(data.get("is_default", False)),
        sprint_id=data.get("sprint_id"),
        filter_query=data.get("filter_query"),
        settings=data.get("settings"),
        client_key=data.get("client_key"),
        lanes=[_lane_from_payload(lane) for lane in data.get("lanes") or []],
        created_at=data.get("created_at") or "",
        updated_at=data.get("updated_at") or "",
    )


def _state_from_payload(data: Dict[str, Any]) -> WorkflowState:
    return WorkflowState(
        id=data["id"],
        project_id=data["project_id"],
        name=data["name"],
        category=data.get("category", "TODO"),
        position=int(data.get("position", 0)),
        color=data.get("color"),
        wip_limit=data.get("wip_limit"),
        is_initial=bool(data.get("is_initial", False)),
        is_final=bool(data.get("is_final", False)),
    )


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        # pydantic validation errors
        return "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or str(detail)
    return str(detail) if detail else resp.reason_phrase


class HttpBoardBackend(BoardBackend):
    """
    Backend talking to a boardsync API over HTTP.

    Example:
        backend = HttpBoardBackend("http://localhost:8011", token="secret")
        board = await backend.get_board(board_id)
        await backend.aclose()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers, transport=transport)

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning(
                "Board API request failed",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise BackendUnavailableError(
                f"Board API unreachable: {exc}",
                metadata={"method": method, "path": path},
            ) from exc

        if resp.is_success:
            return resp.json()

        detail = _error_detail(resp)
        metadata = {"method": method, "path": path, "status_code": resp.status_code}
        error_cls = BackendUnavailableError
        if resp.status_code == 404:
            error_cls = EntityNotFoundError
        elif resp.status_code in REJECTED_STATUSES:
            error_cls = BackendRejectedError
        raise error_cls(detail, status_code=resp.status_code, metadata=metadata)

    # Reads

    async def get_board(self, board_id: str) -> Optional[Board]:
        try:
            data = await self._request("GET", f"/boards/{board_id}")
        except EntityNotFoundError:
            return None
        return _board_from_payload(data)

    async def list_boards(self, project_id: str) -> List[Board]:
        data = await self._request("GET", f"/projects/{project_id}/boards")
        return [_board_from_payload(item) for item in data]

    async def list_states(self, project_id: str) -> List[WorkflowState]:
        data = await self._request("GET", f"/projects/{project_id}/states")
        return [_state_from_payload(item) for item in data]

    # Boards

    async def create_board(
        self,
        *,
        project_id: str,
        name: str,
        board_type: str,
        is_default: bool = False,
        sprint_id: Optional[str] = None,
        client_key: Optional[str] = None,
    ) -> Board:
        payload = {
            "project_id": project_id,
            "name": name,
            "board_type": board_type,
            "is_default": is_default,
            "sprint_id": sprint_id,
            "client_key": client_key,
        }
        return _board_from_payload(await self._request("POST", "/boards", json=payload))

    async def update_board(self, board_id: str, **patch: Any) -> Board:
        return _board_from_payload(await self._request("PATCH", f"/boards/{board_id}", json=patch))

    async def delete_board(self, board_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/boards/{board_id}")

    # Lanes

    async def create_lane(
        self,
        *,
        board_id: str,
        name: str,
        position: int,
        mapped_states: Sequence[str] = (),
        wip_limit: Optional[int] = None,
        client_key: Optional[str] = None,
    ) -> Lane:
        payload = {
            "name": name,
            "position": position,
            "mapped_states": list(mapped_states),
            "wip_limit": wip_limit,
            "client_key": client_key,
        }
        return _lane_from_payload(await self._request("POST", f"/boards/{board_id}/lanes", json=payload))

    async def update_lane(self, lane_id: str, **patch: Any) -> Lane:
        return _lane_from_payload(await self._request("PATCH", f"/lanes/{lane_id}", json=patch))

    async def delete_lane(self, lane_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/lanes/{lane_id}")

    async def reorder_lanes(self, lanes: Sequence[Tuple[str, int]]) -> Dict[str, Any]:
        payload = {"lanes": [{"id": lane_id, "position": position} for lane_id, position in lanes]}
        return await self._request("POST", "/lanes/reorder", json=payload)
