"""Baseline store — reference images keyed by (variant, suite, test, image) on disk."""

from __future__ import annotations

import hashlib
import io
import json
import logging
import os
import tempfile
import time
from pathlib import Path

from PIL import Image

from visreg.errors import BaselineExistsError, BaselineNotFoundError, BaselineStoreReadOnlyError
from visreg.models.baseline import BaselineEntry, BaselineRegistry
from visreg.models.outcome import BaselineKey
from visreg.url_utils import slugify

logger = logging.getLogger(__name__)


class BaselineStore:
    """Manages baseline images, their JSON registry and an append-only audit log.

    Layout::

        {root}/{variant}/{suite}/{test_name}/{image_name}.png
        {root}/registry.json
        {root}/audit.jsonl

    Comparisons only read. Writes come from committing a run's staged
    creations (``create``, never overwrites) or an explicit update (``put``).
    A store opened ``read_only`` refuses both.
    """

    def __init__(self, root: Path, read_only: bool = False):
        self.root = Path(root)
        self.read_only = read_only
        self.registry_path = self.root / "registry.json"
        self.audit_path = self.root / "audit.jsonl"

    # --- Paths ---------------------------------------------------------------

    def relative_path(self, key: BaselineKey) -> Path:
        return (
            Path(slugify(key.variant))
            / slugify(key.suite)
            / slugify(key.test_name)
            / f"{slugify(key.image_name)}.png"
        )

    def path_for(self, key: BaselineKey) -> Path:
        """Return the absolute, deterministic path of a key's baseline image."""
        return self.root / self.relative_path(key)

    def _registry_key(self, key: BaselineKey) -> str:
        return self.relative_path(key).with_suffix("").as_posix()

    # --- Reads ---------------------------------------------------------------

    def exists(self, key: BaselineKey) -> bool:
        return self.path_for(key).is_file()

    def get(self, key: BaselineKey) -> Image.Image:
        """Load the stored baseline for a key.

        Raises BaselineNotFoundError when no baseline exists yet, which
        means "first run" rather than "regression".
        """
        path = self.path_for(key)
        if not path.is_file():
            raise BaselineNotFoundError(f"No baseline for {key.label} at {path}")
        with Image.open(path) as img:
            img.load()
            return img.convert("RGBA")

    def load_registry(self) -> BaselineRegistry:
        """Load registry from disk, or create a new one."""
        if self.registry_path.exists():
            try:
                with open(self.registry_path) as f:
                    data = json.load(f)
                return BaselineRegistry(**data)
            except Exception as e:
                logger.warning("Failed to load baseline registry: %s. Creating new.", e)
        return BaselineRegistry()

    def entry(self, key: BaselineKey) -> BaselineEntry | None:
        """Look up registry metadata for a key, if the image still exists."""
        entry = self.load_registry().baselines.get(self._registry_key(key))
        if entry is None:
            return None
        if not (self.root / entry.image_path).exists():
            logger.warning("Baseline image missing for %s: %s", key.label, entry.image_path)
            return None
        return entry

    # --- Writes --------------------------------------------------------------

    def put(self, key: BaselineKey, image: Image.Image, run_id: str = "") -> BaselineEntry:
        """Unconditionally write the baseline for a key (explicit update only)."""
        action = "updated" if self.exists(key) else "created"
        return self._write(key, image, run_id, action)

    def create(self, key: BaselineKey, image: Image.Image, run_id: str = "") -> BaselineEntry:
        """Write a baseline for a key that has none yet; never overwrites."""
        if self.exists(key):
            raise BaselineExistsError(f"Baseline already exists for {key.label}")
        return self._write(key, image, run_id, "created")

    def _write(self, key: BaselineKey, image: Image.Image, run_id: str, action: str) -> BaselineEntry:
        if self.read_only:
            raise BaselineStoreReadOnlyError(f"Refusing to write {key.label}: store is read-only")

        dest = self.path_for(key)
        dest.parent.mkdir(parents=True, exist_ok=True)

        buf = io.BytesIO()
        image.save(buf, format="PNG")
        data = buf.getvalue()
        _atomic_write_bytes(dest, data)

        entry = BaselineEntry(
            suite=key.suite,
            test_name=key.test_name,
            variant=key.variant,
            image_name=key.image_name,
            width=image.width,
            height=image.height,
            image_path=self.relative_path(key).as_posix(),
            captured_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            run_id=run_id,
            image_hash=hashlib.sha256(data).hexdigest(),
            action=action,
        )

        registry = self.load_registry()
        registry.baselines[self._registry_key(key)] = entry
        self._save_registry(registry)
        self._audit(entry)
        logger.info("Baseline %s for %s (%dx%d)", action, key.label, image.width, image.height)
        return entry

    def _save_registry(self, registry: BaselineRegistry) -> None:
        registry.last_updated = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        self.root.mkdir(parents=True, exist_ok=True)
        _atomic_write_bytes(
            self.registry_path,
            json.dumps(registry.model_dump(), indent=2, sort_keys=True).encode(),
        )
        logger.debug("Saved baseline registry to %s", self.registry_path)

    def _audit(self, entry: BaselineEntry) -> None:
        with open(self.audit_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.model_dump(), sort_keys=True) + "\n")


def _atomic_write_bytes(dest: Path, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
