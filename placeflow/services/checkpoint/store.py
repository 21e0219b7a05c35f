"""File-backed checkpoint store.

One JSON document per (stage, country, optional category) lives in the store
directory. Completed documents are moved to ``archive/`` with a completion
timestamp in their name; nothing is ever deleted.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from placeflow.core.exceptions import PersistenceError
from placeflow.services.checkpoint.models import (
    DiscoveryProgress,
    ProgressDocument,
    progress_adapter,
    utcnow,
)

STAGES = ("discovery", "dataset", "enrichment")
ARCHIVE_DIR = "archive"

_COUNTRY_RE = re.compile(r"^[A-Z]{2,3}$")
_CATEGORY_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


def scope_key(stage: str, country: str, category: Optional[str] = None) -> str:
    """Render a scope to its unique address, e.g. ``discovery.BE.pet-store``.

    No part may contain the ``.`` separator, so distinct scopes never collide.
    """
    if stage not in STAGES:
        raise ValueError(f"Unknown stage '{stage}'")
    country = country.upper()
    if not _COUNTRY_RE.match(country):
        raise ValueError(f"Invalid country code '{country}'")
    if category is None:
        return f"{stage}.{country}"
    if not _CATEGORY_RE.match(category):
        raise ValueError(f"Invalid category slug '{category}'")
    return f"{stage}.{country}.{category}"


class CheckpointStore:
    """Durable progress documents, one live document per scope."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    @property
    def archive_directory(self) -> Path:
        return self.directory / ARCHIVE_DIR

    def path_for(self, stage: str, country: str, category: Optional[str] = None) -> Path:
        return self.directory / f"{scope_key(stage, country, category)}.json"

    def load(
        self, stage: str, country: str, category: Optional[str] = None
    ) -> Optional[ProgressDocument]:
        """Load the live document for a scope, or None to start fresh."""
        path = self.path_for(stage, country, category)
        if not path.exists():
            return None
        return self._read(path)

    def save(self, doc: ProgressDocument) -> None:
        """Atomically write a document, stamping ``updated_at``."""
        stage, country, category = doc.scope
        path = self.path_for(stage, country, category)
        doc.updated_at = utcnow()
        payload = doc.model_dump_json(indent=2)

        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self.directory,
                prefix=f".{path.stem}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to save progress to {path}: {e}") from e

    def archive(
        self, stage: str, country: str, category: Optional[str] = None
    ) -> Optional[Path]:
        """Move the live document out of the active namespace.

        Returns the archived path, or None when there was nothing to archive.
        """
        path = self.path_for(stage, country, category)
        if not path.exists():
            return None

        stamp = utcnow().strftime("%Y%m%dT%H%M%S%fZ")
        target = self.archive_directory / f"{path.stem}.completed-{stamp}.json"
        try:
            self.archive_directory.mkdir(parents=True, exist_ok=True)
            os.replace(path, target)
        except OSError as e:
            raise PersistenceError(f"Failed to archive {path}: {e}") from e

        logger.info(f"Archived progress {path.name} -> {target.name}")
        return target

    def list_active(self) -> list[ProgressDocument]:
        if not self.directory.exists():
            return []
        return [self._read(path) for path in sorted(self.directory.glob("*.json"))]

    def list_archived(self) -> list[Path]:
        if not self.archive_directory.exists():
            return []
        return sorted(self.archive_directory.glob("*.json"))

    @staticmethod
    def _read(path: Path) -> ProgressDocument:
        try:
            return progress_adapter.validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Unreadable progress document {path}: {e}") from e


def format_progress(doc: ProgressDocument) -> str:
    """One-line human readable status for a progress document."""
    updated = doc.updated_at.strftime("%Y-%m-%d %H:%M")
    if isinstance(doc, DiscoveryProgress):
        s = doc.stats
        pct = round(s.units_done / s.units_total * 100) if s.units_total else 0
        current = f" | in flight: {doc.current_unit}" if doc.current_unit else ""
        return (
            f"discovery {doc.country}/{doc.category}: {s.units_done}/{s.units_total} units "
            f"({pct}%) | created {s.created} | skipped {s.skipped} | errors {s.errors}"
            f"{current} | updated {updated}"
        )

    s = doc.stats
    pct = round(s.processed / s.to_process * 100) if s.to_process else 0
    return (
        f"{doc.kind} {doc.country}: {s.processed}/{s.to_process} ({pct}%) | "
        f"last id {doc.last_processed_id} | enriched {s.enriched} | failed {s.failed} | "
        f"updated {updated}"
    )
