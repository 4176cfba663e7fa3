"""Async client for the Kie job API (task creation and status lookup)."""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from poster_studio.config import ProviderConfig
from poster_studio.errors import (
    GenerationError,
    InvalidCredentials,
    InvalidParameters,
    ProviderBalanceExhausted,
    ProviderUnavailable,
    RateLimited,
)

logger = logging.getLogger(__name__)


class TaskState(str, enum.Enum):
    PENDING = "waiting"
    SUCCEEDED = "success"
    FAILED = "fail"


@dataclass
class TaskStatus:
    task_id: str
    state: TaskState
    result_urls: List[str] = field(default_factory=list)
    fail_code: Optional[str] = None
    fail_msg: Optional[str] = None

    @property
    def image_url(self) -> Optional[str]:
        return self.result_urls[0] if self.result_urls else None


class ProviderResponseError(ProviderUnavailable):
    """Raised for a status lookup that did not produce a usable answer."""

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


_STATUS_ERRORS = {
    400: InvalidParameters,
    401: InvalidCredentials,
    402: ProviderBalanceExhausted,
    429: RateLimited,
}


def _error_for_status(status: int, body: str, action: str) -> GenerationError:
    detail = {"status": status, "body": body[:500]}
    error_cls = _STATUS_ERRORS.get(status)
    if error_cls is not None:
        return error_cls(f"provider rejected {action} with HTTP {status}", detail=detail)
    return ProviderUnavailable(f"provider {action} failed with HTTP {status}", detail=detail)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_result_urls(result_json: Any) -> List[str]:
    """Extract ``resultUrls`` from the provider's JSON-encoded result envelope."""

    if not result_json:
        return []
    payload = result_json
    if isinstance(result_json, str):
        try:
            payload = json.loads(result_json)
        except ValueError:
            logger.warning("unparseable resultJson from provider", extra={"raw": result_json[:200]})
            return []
    if not isinstance(payload, dict):
        return []
    urls = payload.get("resultUrls") or []
    return [str(url) for url in urls if isinstance(url, str) and url.strip()]


class KieClient:
    """Thin wrapper over ``POST /createTask`` and ``GET /recordInfo``."""

    def __init__(self, config: ProviderConfig, http: httpx.AsyncClient) -> None:
        self.config = config
        self.http = http

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise InvalidCredentials("KIE_AI_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def create_task(
        self,
        *,
        prompt: str,
        image_urls: Sequence[str],
        aspect_ratio: str,
        resolution: str,
        output_format: str,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "input": {
                "prompt": prompt,
                "image_input": list(image_urls),
                "aspect_ratio": aspect_ratio,
                "resolution": resolution,
                "output_format": output_format,
            },
        }
        url = f"{self.config.api_base}/createTask"
        try:
            response = await self.http.post(
                url, json=payload, headers=self._headers(), timeout=self.config.create_timeout
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error(
                "create task rejected",
                extra={"status": response.status_code, "body": response.text[:500]},
            )
            raise _error_for_status(response.status_code, response.text, "task creation")

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderUnavailable("provider returned a non-JSON createTask body") from exc

        code = _as_int(body.get("code")) if isinstance(body, dict) else None
        data = body.get("data") if isinstance(body, dict) else None
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if code != 200 or not task_id:
            message = body.get("msg") if isinstance(body, dict) else None
            if code in _STATUS_ERRORS:
                raise _error_for_status(code, str(message or ""), "task creation")
            raise ProviderUnavailable(
                f"provider did not return a task id: {message or 'unknown error'}",
                detail={"code": code},
            )

        logger.info(
            "provider task created",
            extra={"task_id": task_id, "images": len(payload["input"]["image_input"]), "resolution": resolution},
        )
        return str(task_id)

    async def get_task(self, task_id: str) -> TaskStatus:
        url = f"{self.config.api_base}/recordInfo"
        try:
            response = await self.http.get(
                url,
                params={"taskId": task_id},
                headers=self._headers(),
                timeout=self.config.poll_timeout,
            )
        except httpx.HTTPError as exc:
            raise ProviderResponseError(f"status lookup failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderResponseError(
                f"status lookup returned HTTP {response.status_code}",
                status_code=response.status_code,
                detail={"status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderResponseError(
                "status lookup returned a non-JSON body", status_code=response.status_code
            ) from exc

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ProviderResponseError(
                f"status lookup missing data: {body.get('msg') if isinstance(body, dict) else body!r}",
                status_code=response.status_code,
            )

        raw_state = str(data.get("state") or "").lower()
        if raw_state == TaskState.SUCCEEDED.value:
            state = TaskState.SUCCEEDED
        elif raw_state == TaskState.FAILED.value:
            state = TaskState.FAILED
        else:
            state = TaskState.PENDING

        fail_code = data.get("failCode")
        return TaskStatus(
            task_id=task_id,
            state=state,
            result_urls=parse_result_urls(data.get("resultJson")),
            fail_code=str(fail_code) if fail_code not in (None, "") else None,
            fail_msg=data.get("failMsg") or None,
        )


__all__ = ["KieClient", "ProviderResponseError", "TaskState", "TaskStatus", "parse_result_urls"]
