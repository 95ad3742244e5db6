"""Artifact maintenance — prunes old run directories."""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def cleanup_old_artifacts(runs_dir: Path, max_age_days: int = 7, now: float | None = None) -> list[Path]:
    """Delete run directories not modified within ``max_age_days``.

    Only the direct children of ``runs_dir`` are considered. Baselines live
    elsewhere and are never touched. Returns the removed paths.
    """
    if not runs_dir.is_dir():
        return []
    cutoff = (now if now is not None else time.time()) - max_age_days * 24 * 60 * 60

    removed: list[Path] = []
    for entry in sorted(runs_dir.iterdir()):
        try:
            mtime = entry.stat().st_mtime
        except FileNotFoundError:
            continue
        if mtime >= cutoff:
            continue
        if entry.is_dir():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed.append(entry)

    if removed:
        logger.info("Removed %d run artifacts older than %d days from %s", len(removed), max_age_days, runs_dir)
    return removed
