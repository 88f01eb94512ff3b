"""Filesystem-backed context snapshot provider."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from pydantic import ValidationError

from models import ContextDocument, ContextPayload

logger = logging.getLogger(__name__)


class ContextStorage:
    """One JSON file per context under a root directory."""

    def __init__(self, root: Optional[Path] = None):
        base_dir = Path(root) if root else Path(__file__).resolve().parent / "storage" / "contexts"
        base_dir.mkdir(parents=True, exist_ok=True)
        self.contexts_dir = base_dir

    # ------------------------------------------------------------------
    # Snapshot provider API
    # ------------------------------------------------------------------
    async def list_all(self) -> List[ContextDocument]:
        records = await asyncio.to_thread(self.list_records)
        return list(records.values())

    async def get_one(self, context_id: str) -> Optional[ContextDocument]:
        return await asyncio.to_thread(self.get_record, context_id)

    # ------------------------------------------------------------------
    # Synchronous helpers
    # ------------------------------------------------------------------
    def list_records(self) -> Dict[str, ContextDocument]:
        records: Dict[str, ContextDocument] = {}
        if not self.contexts_dir.exists():
            return records
        for path in sorted(self.contexts_dir.glob("*.json")):
            document = self._read(path)
            if document is not None:
                records[document.id] = document
        return records

    def get_record(self, context_id: str) -> Optional[ContextDocument]:
        path = self._path_for(context_id)
        if not path.exists():
            return None
        return self._read(path)

    def save(self, document: ContextDocument) -> ContextDocument:
        path = self._path_for(document.id)
        payload = ContextPayload.from_document(document)
        path.write_text(payload.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        return document

    def delete(self, context_id: str) -> bool:
        path = self._path_for(context_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _path_for(self, context_id: str) -> Path:
        if not context_id or not context_id.strip():
            raise ValueError("Context id is empty.")
        return self.contexts_dir / f"{quote(context_id, safe='')}.json"

    def _read(self, path: Path) -> Optional[ContextDocument]:
        try:
            payload = ContextPayload.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Skipping unreadable context file %s: %s", path.name, exc)
            return None
        expected = unquote(path.stem)
        if payload.id != expected:
            logger.warning("Context file %s holds id %r", path.name, payload.id)
        return payload.to_document()
