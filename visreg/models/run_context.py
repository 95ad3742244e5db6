"""Run context — process-wide facts about one run, built once and passed explicitly."""

from __future__ import annotations

import logging
import os
import subprocess
import time
import uuid
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from visreg.models.config import HarnessConfig

logger = logging.getLogger(__name__)


class RunContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    started_at: str  # ISO timestamp
    environment: str = "test"
    ci: bool = False
    branch: str = "local"
    commit: str = "unknown"
    base_url: str = ""
    browsers: list[str] = Field(default_factory=list)
    workers: int = 1
    retries: int = 0
    triggered_by: Optional[str] = None

    @classmethod
    def from_environment(
        cls,
        config: HarnessConfig,
        env: Mapping[str, str] | None = None,
        run_id: str | None = None,
        started_at: str | None = None,
    ) -> "RunContext":
        """Build the context from CI environment variables and the config.

        Reads the GitHub Actions variables when present and falls back to
        ``git rev-parse`` for the commit on a developer machine.
        """
        env = os.environ if env is None else env
        ci = bool(env.get("CI"))
        commit = env.get("GITHUB_SHA", "")[:7] or _git_short_sha()
        if run_id is None:
            gh_run = env.get("GITHUB_RUN_ID")
            run_id = f"run_{gh_run}" if gh_run else f"run_{uuid.uuid4().hex[:8]}"
        ctx = cls(
            run_id=run_id,
            started_at=started_at or time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            environment=env.get("VISREG_ENV", config.environment),
            ci=ci,
            branch=env.get("GITHUB_HEAD_REF") or env.get("GITHUB_REF_NAME") or env.get("GITHUB_REF") or "local",
            commit=commit,
            base_url=config.target_url,
            browsers=sorted({v.browser for v in config.variants}),
            workers=1,
            retries=int(env.get("VISREG_RETRIES", "0") or 0),
            triggered_by=env.get("GITHUB_ACTOR"),
        )
        logger.debug("Run context: %s", ctx.model_dump())
        return ctx


def _git_short_sha() -> str:
    try:
        out = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True, text=True, timeout=5, check=True,
        )
        return out.stdout.strip() or "unknown"
    except (OSError, subprocess.SubprocessError):
        return "unknown"
