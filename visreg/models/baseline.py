"""Baseline registry data structures."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class BaselineEntry(BaseModel):
    suite: str
    test_name: str
    variant: str
    image_name: str
    width: int
    height: int
    image_path: str  # relative path from baselines_dir to the PNG
    captured_at: str  # ISO timestamp
    run_id: str
    image_hash: str  # SHA-256 hex digest
    action: Literal["created", "updated"] = "created"


class BaselineRegistry(BaseModel):
    last_updated: str = ""
    baselines: dict[str, BaselineEntry] = Field(default_factory=dict)
    # key format: "{variant}/{suite}/{test_name}/{image_name}" (slugified)
