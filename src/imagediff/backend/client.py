"""HTTP client for the remote text recognition task service.

The service stores recognition jobs in a task table. ``submit`` creates a job
and returns its id; ``check`` returns the stored state of several jobs at once.
Jobs the store has not persisted yet are simply absent from ``check``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timezone
from typing import Any, Dict, Iterable, Mapping, Optional

import requests
from dateutil import parser as date_parser

from ..config import Settings
from ..core.types import LineRecognitionRequest
from ..errors import RecognitionError, SubmissionError

logger = logging.getLogger(__name__)

TASK_TYPE = "dify-ocr"
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_FAILED = "failed"


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """ISO-8601 string to epoch seconds; ``None`` when missing or malformed."""

    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value.strip())
    except ValueError:
        logger.debug("Ignoring malformed timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


@dataclass(frozen=True)
class RemoteTaskStatus:
    task_id: str
    status: str
    text: str = ""
    duration: Optional[float] = None
    error_message: Optional[str] = None
    updated_at: Optional[float] = None
    created_at: Optional[float] = None

    @property
    def is_done(self) -> bool:
        return self.status == STATUS_DONE

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FAILED

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteTaskStatus":
        output = payload.get("outputData") or {}
        duration = output.get("duration")
        return cls(
            task_id=str(payload.get("taskId", "")),
            status=str(payload.get("status", STATUS_PENDING)),
            text=str(output.get("text") or ""),
            duration=float(duration) if duration is not None else None,
            error_message=payload.get("errorMessage"),
            updated_at=parse_timestamp(payload.get("updatedAt")),
            created_at=parse_timestamp(payload.get("createdAt")),
        )


class RecognitionClient:
    """Thin wrapper over the submit/check endpoints.

    Transport problems (connection errors, timeouts, non-2xx answers) are
    raised as :class:`requests.RequestException`; answers the service marks
    as unsuccessful raise :class:`SubmissionError` or
    :class:`RecognitionError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        submit_path: str = "/functions/v1/submit-task",
        check_path: str = "/functions/v1/check-task",
        api_key: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.submit_url = self.base_url + "/" + submit_path.lstrip("/")
        self.check_url = self.base_url + "/" + check_path.lstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "RecognitionClient":
        return cls(
            settings.service_url,
            submit_path=settings.submit_path,
            check_path=settings.check_path,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
            session=session,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise RecognitionError(f"Unexpected response from {url}: {data!r}")
        return data

    def submit(self, request: LineRecognitionRequest, conversation_id: Optional[str]) -> str:
        """Create a recognition job for one line and return its task id."""

        if not conversation_id:
            raise SubmissionError("No conversation id set")
        payload = {
            "taskType": TASK_TYPE,
            "conversationId": conversation_id,
            "inputData": {
                "wording": request.wording,
                "imageData": request.image_data,
                "imageName": request.image_name or "line-preview.png",
            },
        }
        data = self._post(self.submit_url, payload)
        task_id = data.get("taskId")
        if not data.get("success") or not task_id:
            raise SubmissionError(data.get("error") or "Submission rejected")
        logger.debug("Submitted line %d as task %s", request.line_index, task_id)
        return str(task_id)

    def check(self, task_ids: Iterable[str]) -> Dict[str, RemoteTaskStatus]:
        """Return the stored status of each known task, keyed by task id."""

        ids = list(task_ids)
        if not ids:
            return {}
        data = self._post(self.check_url, {"taskIds": ids})
        if not data.get("success"):
            raise RecognitionError(data.get("error") or "Task status check failed")
        statuses: Dict[str, RemoteTaskStatus] = {}
        for item in data.get("tasks") or []:
            status = RemoteTaskStatus.from_payload(item)
            if status.task_id:
                statuses[status.task_id] = status
        return statuses
