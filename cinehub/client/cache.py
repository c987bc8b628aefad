"""Durable client-side snapshots scoped by owner identity."""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from ..utils import owner_scope

logger = logging.getLogger(__name__)

SNAPSHOT_NAMES = ("watchlist", "favorites", "ratings", "history")


class SnapshotCache:
    """Stores JSON snapshots under ``<root>/<owner scope>/<name>.json``.

    Every key includes the owner scope, so one identity can never read
    another identity's snapshot, and :meth:`purge` removes everything an
    identity left behind in one step.
    """

    def __init__(self, root: Path | str):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, owner: str, name: str) -> Path:
        return self._root / owner_scope(owner) / f"{name}.json"

    def load(self, owner: str, name: str) -> list[dict[str, Any]] | None:
        path = self.path_for(owner, name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Unable to read snapshot %s", path, exc_info=True)
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt snapshot %s", path)
            return None
        if not isinstance(payload, dict) or payload.get("owner") != owner:
            return None
        items = payload.get("items")
        if not isinstance(items, list):
            return None
        return [item for item in items if isinstance(item, dict)]

    def save(self, owner: str, name: str, items: list[dict[str, Any]]) -> None:
        path = self.path_for(owner, name)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps({"owner": owner, "items": items}), encoding="utf-8"
            )
            os.replace(tmp_path, path)
        except OSError:
            logger.warning("Unable to write snapshot %s", path, exc_info=True)

    def purge(self, owner: str) -> None:
        """Delete every snapshot stored for ``owner``."""

        scope_dir = self._root / owner_scope(owner)
        if not scope_dir.exists():
            return
        try:
            shutil.rmtree(scope_dir)
        except OSError:
            logger.warning("Unable to purge snapshots in %s", scope_dir, exc_info=True)
        else:
            logger.info("Purged cached snapshots for previous identity")
