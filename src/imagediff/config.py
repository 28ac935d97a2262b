"""Service settings and orchestrator tuning."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "IMAGEDIFF_"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Timing and retry knobs for the submit/poll loop (seconds)."""

    batch_size: int = 10
    max_submit_retries: int = 3
    submit_backoff: float = 1.0
    poll_interval: float = 3.0
    poll_timeout: float = 600.0
    stuck_timeout: float = 40.0
    grace_period: float = 10.0
    max_resubmits: int = 3
    max_workers: int = 10

    def validate(self) -> "OrchestratorConfig":
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.max_submit_retries < 1:
            raise ValueError("max_submit_retries must be >= 1")
        if self.max_resubmits < 0:
            raise ValueError("max_resubmits must be >= 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        for name in ("submit_backoff", "poll_interval", "poll_timeout", "stuck_timeout", "grace_period"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        return self

    def to_dict(self) -> Dict[str, float]:
        return {
            "batch_size": self.batch_size,
            "max_submit_retries": self.max_submit_retries,
            "submit_backoff": self.submit_backoff,
            "poll_interval": self.poll_interval,
            "poll_timeout": self.poll_timeout,
            "stuck_timeout": self.stuck_timeout,
            "grace_period": self.grace_period,
            "max_resubmits": self.max_resubmits,
            "max_workers": self.max_workers,
        }

    def copy(self, **overrides: float) -> "OrchestratorConfig":
        return replace(self, **overrides)


@dataclass(frozen=True)
class Settings:
    service_url: str = ""
    submit_path: str = "/functions/v1/submit-task"
    check_path: str = "/functions/v1/check-task"
    api_key: str = ""
    request_timeout: float = 30.0
    conversation_id: Optional[str] = None
    log_level: str = "INFO"
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    @property
    def recognition_enabled(self) -> bool:
        return bool(self.service_url)


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(ENV_PREFIX + name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load a ``.env`` file into ``os.environ`` without overriding it."""

    try:
        if path is not None:
            return load_dotenv(dotenv_path=str(path), override=False)
        return load_dotenv(override=False)
    except OSError as exc:
        logger.warning("Could not read .env file: %s", exc)
        return False


def load_settings(env: Optional[Mapping[str, str]] = None, *, dotenv_path: Optional[Path] = None) -> Settings:
    """Build :class:`Settings` from ``IMAGEDIFF_*`` environment variables.

    When ``env`` is omitted the process environment is used, after merging a
    ``.env`` file if one is found.
    """

    if env is None:
        load_env_file(dotenv_path)
        env = os.environ

    defaults = OrchestratorConfig()
    orchestrator = OrchestratorConfig(
        batch_size=_number(env, "BATCH_SIZE", defaults.batch_size, int),
        max_submit_retries=_number(env, "MAX_SUBMIT_RETRIES", defaults.max_submit_retries, int),
        submit_backoff=defaults.submit_backoff,
        poll_interval=_number(env, "POLL_INTERVAL", defaults.poll_interval, float),
        poll_timeout=_number(env, "POLL_TIMEOUT", defaults.poll_timeout, float),
        stuck_timeout=_number(env, "STUCK_TIMEOUT", defaults.stuck_timeout, float),
        grace_period=_number(env, "GRACE_PERIOD", defaults.grace_period, float),
        max_resubmits=_number(env, "MAX_RESUBMITS", defaults.max_resubmits, int),
        max_workers=defaults.max_workers,
    ).validate()

    base = Settings()
    return Settings(
        service_url=(_get(env, "SERVICE_URL") or base.service_url).rstrip("/"),
        submit_path=_get(env, "SUBMIT_PATH") or base.submit_path,
        check_path=_get(env, "CHECK_PATH") or base.check_path,
        api_key=_get(env, "API_KEY") or base.api_key,
        request_timeout=_number(env, "REQUEST_TIMEOUT", base.request_timeout, float),
        conversation_id=_get(env, "CONVERSATION_ID"),
        log_level=(_get(env, "LOG_LEVEL") or base.log_level).upper(),
        orchestrator=orchestrator,
    )
