"""Remote text recognition: HTTP client and submit/poll orchestration."""

from .client import RecognitionClient, RemoteTaskStatus
from .orchestrator import RecognitionTask, TaskOrchestrator, recognize_lines

__all__ = [
    "RecognitionClient",
    "RemoteTaskStatus",
    "RecognitionTask",
    "TaskOrchestrator",
    "recognize_lines",
]
