"""Local persistence of the merged zone configuration.

After every successful sync pass the whole configuration is written as a
single JSON document so a restart resumes from the last-known state.
Writes go to a temporary sibling first and are then renamed over the
snapshot, so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from autohome.models.schemas import HomeConfig

logger = logging.getLogger(__name__)


class SnapshotService:
    """Save and load ``HomeConfig`` documents.

    Usage::

        service = SnapshotService("autohome_snapshot.json")
        await service.save(manager.to_config())
        config = await service.load()
    """

    def __init__(self, path: str | Path, *, fallback_path: str | Path | None = None) -> None:
        self._path = Path(path)
        self._fallback = Path(fallback_path) if fallback_path else None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def save(self, config: HomeConfig) -> None:
        payload = config.model_dump(mode="json", by_alias=True, exclude_none=True)
        async with self._lock:
            await asyncio.to_thread(self._write, payload)
        logger.debug("Snapshot written to %s (%d zones)", self._path, len(config.zones))

    async def load(self) -> HomeConfig:
        """Return the snapshot, else the static configuration, else an empty config.

        An unreadable snapshot is logged and skipped in favour of the
        fallback rather than raised: the controller must still start.
        """
        for candidate in (self._path, self._fallback):
            if candidate is None or not candidate.exists():
                continue
            try:
                raw = await asyncio.to_thread(candidate.read_text, encoding="utf-8")
                config = HomeConfig.model_validate(json.loads(raw))
            except (OSError, json.JSONDecodeError, ValidationError) as exc:
                logger.warning("Ignoring unreadable configuration %s: %s", candidate, exc)
                continue
            logger.info("Loaded configuration from %s", candidate)
            return config
        logger.info("No local configuration found; starting empty")
        return HomeConfig()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write(self, payload: dict[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(f"{self._path.name}.tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        tmp.replace(self._path)


__all__ = ["SnapshotService"]
