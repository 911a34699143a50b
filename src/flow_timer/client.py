"""HTTP client for a remote timer API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

import httpx

from .config import TimerSettings
from .errors import ERRORS_BY_CODE, TimerError, TransportError
from .models import ActiveTimer, ResumeResult, TimeEntry, TimerStatus
from .payloads import entry_from_payload, status_from_payload, timer_from_payload
from .webapp import OWNER_HEADER

logger = logging.getLogger(__name__)


class TimerClient:
    """Talks to ``flow-timer serve`` on behalf of one owner.

    Server errors come back as the same :class:`TimerError` subclasses the
    engine raises. Timeouts and dropped connections raise
    :class:`TransportError`; the transition may or may not have happened.
    """

    def __init__(
        self,
        base_url: str,
        owner_id: str,
        *,
        settings: Optional[TimerSettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.owner_id = owner_id
        self._settings = settings or TimerSettings()
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={OWNER_HEADER: owner_id},
            timeout=self._settings.request_timeout.total_seconds(),
            transport=transport,
        )

    def __enter__(self) -> "TimerClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def get_status(self) -> TimerStatus:
        return status_from_payload(self._request("GET", "/api/timer/status"))

    def start(
        self,
        task_id: Optional[str] = None,
        description: Optional[str] = None,
        is_break: bool = False,
        category_id: Optional[str] = None,
    ) -> ActiveTimer:
        body = {
            "taskId": task_id,
            "categoryId": category_id,
            "description": description,
            "isBreak": is_break,
        }
        return timer_from_payload(self._request("POST", "/api/timer/start", json=body))

    def start_safely(
        self,
        task_id: Optional[str] = None,
        description: Optional[str] = None,
        is_break: bool = False,
        category_id: Optional[str] = None,
    ) -> ActiveTimer:
        """Start, checking the server state before retrying a lost request."""
        try:
            return self.start(task_id, description, is_break, category_id)
        except TransportError as exc:
            logger.warning("Start outcome unknown (%s); checking status before retry", exc)
        status = self.get_status()
        if status.timer is not None:
            return status.timer
        return self.start(task_id, description, is_break, category_id)

    def pause(self, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/api/timer/pause", json={"reason": reason})

    def resume(self) -> ResumeResult:
        data = self._request("POST", "/api/timer/resume")
        return ResumeResult(
            paused_duration=int(data["pausedDuration"]),
            total_paused_duration=int(data["totalPausedDuration"]),
        )

    def stop(self, description: Optional[str] = None) -> TimeEntry:
        data = self._request("POST", "/api/timer/stop", json={"description": description})
        return entry_from_payload(data, self.owner_id)

    def stats(
        self, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        return self._request("GET", "/api/stats", params=_date_params(start_date, end_date))

    def activities(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = _date_params(start_date, end_date)
        if limit is not None:
            params["limit"] = limit
        return self._request("GET", "/api/activities", params=params)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        if response.is_success:
            return response.json()
        raise _error_from_response(response)


def _date_params(start_date: Optional[date], end_date: Optional[date]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if start_date is not None:
        params["start_date"] = start_date.isoformat()
    if end_date is not None:
        params["end_date"] = end_date.isoformat()
    return params


def _error_from_response(response: httpx.Response) -> TimerError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("detail") or response.text or response.reason_phrase
    error_class = ERRORS_BY_CODE.get(body.get("error") or "", TimerError)
    if error_class is TimerError:
        return TimerError(f"HTTP {response.status_code}: {detail}")
    return error_class(str(detail))
