"""
Crash-recovery drafts for open documents.

A draft is the engine snapshot, written after every change so a station that
crashes or loses power mid-document can reopen it without re-scanning.
Writes are atomic (temp file then move, previous file kept as .backup) and
go through a write-behind thread so a slow network drive never stalls the
scanner.
"""

import copy
import json
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from code_normalizer import normalize_code
from logger import get_logger

logger = get_logger(__name__)


class DraftStore:
    """
    One JSON draft per document folio.

    Attributes:
        draft_dir (Path): Directory holding the drafts
    """

    def __init__(self, draft_dir):
        self.draft_dir = Path(draft_dir)
        self.draft_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, folio: str) -> Path:
        return self.draft_dir / f"draft_{normalize_code(folio) or 'UNKNOWN'}.json"

    def save(self, snapshot: Dict[str, Any]):
        """
        Write a snapshot atomically.

        On failure the previous draft is restored from its backup and the
        error is logged; the in-memory session carries on.
        """
        folio = snapshot.get('header', {}).get('folio', '')
        draft_path = self.path_for(folio)
        backup_path = draft_path.with_suffix('.json.backup')

        data = {
            'saved_at': datetime.now().isoformat(),
            'snapshot': snapshot,
        }

        try:
            if draft_path.exists():
                shutil.copy2(draft_path, backup_path)

            with tempfile.NamedTemporaryFile(
                mode='w',
                dir=self.draft_dir,
                prefix='.tmp_draft_',
                suffix='.json',
                delete=False,
                encoding='utf-8'
            ) as tmp_file:
                json.dump(data, tmp_file, indent=2, ensure_ascii=False)
                tmp_path = tmp_file.name

            shutil.move(tmp_path, draft_path)
            logger.debug(f"Draft saved: {draft_path.name}")

        except Exception as e:
            logger.error(f"Failed to save draft for {folio}: {e}", exc_info=True)
            if backup_path.exists():
                try:
                    shutil.copy2(backup_path, draft_path)
                    logger.warning(f"Restored draft for {folio} from backup")
                except OSError as restore_error:
                    logger.error(f"Failed to restore draft from backup: {restore_error}")

    def load(self, folio: str) -> Optional[Dict[str, Any]]:
        """Return the saved snapshot, falling back to the backup if the draft is corrupt."""
        draft_path = self.path_for(folio)
        for candidate in (draft_path, draft_path.with_suffix('.json.backup')):
            if not candidate.exists():
                continue
            try:
                with open(candidate, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                return data.get('snapshot', data)
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Could not read draft {candidate.name}: {e}")
        return None

    def exists(self, folio: str) -> bool:
        return self.path_for(folio).exists()

    def delete(self, folio: str):
        draft_path = self.path_for(folio)
        for candidate in (draft_path, draft_path.with_suffix('.json.backup')):
            if candidate.exists():
                candidate.unlink()
        logger.info(f"Draft removed for {folio}")


class DraftWriter:
    """
    Write-behind queue in front of DraftStore.save.

    Only the newest snapshot is kept pending; older ones that were never
    started are dropped. sync_mode writes on the caller's thread (tests).
    """

    def __init__(self, write_fn: Callable[[Dict[str, Any]], None], sync_mode: bool = False):
        self._write_fn = write_fn
        self._sync_mode = sync_mode
        if sync_mode:
            return

        self._condition = threading.Condition()
        self._pending: Optional[Dict[str, Any]] = None
        self._busy = False
        self._stop = False
        self._thread = threading.Thread(target=self._run, daemon=True, name="draft-writer")
        self._thread.start()

    def schedule(self, snapshot: Dict[str, Any]):
        if self._sync_mode:
            self._write_fn(snapshot)
            return
        pending = copy.deepcopy(snapshot)
        with self._condition:
            self._pending = pending
            self._condition.notify()

    def flush(self):
        """Block until nothing is pending or being written."""
        if self._sync_mode:
            return
        with self._condition:
            while self._pending is not None or self._busy:
                self._condition.wait()

    def shutdown(self):
        if self._sync_mode:
            return
        self.flush()
        with self._condition:
            self._stop = True
            self._condition.notify()
        self._thread.join(timeout=10)

    def _run(self):
        while True:
            with self._condition:
                while self._pending is None and not self._stop:
                    self._condition.wait()
                if self._stop and self._pending is None:
                    return
                snapshot, self._pending = self._pending, None
                self._busy = True

            try:
                self._write_fn(snapshot)
            except Exception:
                logger.exception("Draft write failed")
            finally:
                with self._condition:
                    self._busy = False
                    self._condition.notify_all()


def attach_drafts(engine, store: DraftStore, sync_mode: bool = False) -> DraftWriter:
    """Save a draft of engine after every change; returns the writer to shut down later."""
    writer = DraftWriter(store.save, sync_mode=sync_mode)
    engine.add_change_listener(lambda e: None if e.finalized else writer.schedule(e.to_snapshot()))
    return writer
