"""
Tests for draft persistence: atomic saves, backup fallback, the write-behind
writer and engine wiring.
"""

import json
import threading
from unittest.mock import patch

import pytest

from draft_store import DraftStore, DraftWriter, attach_drafts


def _snapshot(folio="A00001234", scanned=1):
    return {'header': {'folio': folio}, 'lines': [{'code': 'A100', 'scanned': scanned}]}


@pytest.fixture
def store(tmp_path):
    return DraftStore(tmp_path / "drafts")


class TestDraftStore:

    def test_creates_directory(self, tmp_path):
        DraftStore(tmp_path / "a" / "b")
        assert (tmp_path / "a" / "b").is_dir()

    def test_path_uses_canonical_folio(self, store):
        assert store.path_for("a-0000 1234").name == "draft_A00001234.json"

    def test_save_and_load(self, store):
        store.save(_snapshot())

        assert store.exists("A00001234")
        assert store.load("A00001234") == _snapshot()
        with open(store.path_for("A00001234"), encoding='utf-8') as f:
            assert 'saved_at' in json.load(f)

    def test_second_save_keeps_backup(self, store):
        store.save(_snapshot(scanned=1))
        store.save(_snapshot(scanned=2))

        backup = store.path_for("A00001234").with_suffix('.json.backup')
        assert backup.exists()
        assert store.load("A00001234")['lines'][0]['scanned'] == 2

    def test_load_falls_back_to_backup(self, store):
        store.save(_snapshot(scanned=1))
        store.save(_snapshot(scanned=2))
        store.path_for("A00001234").write_text("{not json", encoding='utf-8')

        assert store.load("A00001234")['lines'][0]['scanned'] == 1

    def test_load_missing(self, store):
        assert store.load("A00000001") is None

    def test_failed_save_keeps_previous_draft(self, store):
        store.save(_snapshot(scanned=1))
        store.save(_snapshot(scanned=2))

        with patch('draft_store.shutil.move', side_effect=OSError("disk full")):
            store.save(_snapshot(scanned=3))

        assert store.load("A00001234")['lines'][0]['scanned'] == 2

    def test_delete(self, store):
        store.save(_snapshot())
        store.save(_snapshot())
        store.delete("A00001234")
        assert not store.exists("A00001234")
        assert not store.path_for("A00001234").with_suffix('.json.backup').exists()


class TestDraftWriter:

    def test_sync_mode_writes_immediately(self):
        written = []
        writer = DraftWriter(written.append, sync_mode=True)
        writer.schedule({'n': 1})
        assert written == [{'n': 1}]

    def test_background_writes_latest(self):
        written = []
        writer = DraftWriter(written.append)
        for n in range(20):
            writer.schedule({'n': n})
        writer.flush()
        writer.shutdown()

        assert written[-1] == {'n': 19}
        assert len(written) <= 20

    def test_snapshot_is_copied(self):
        release = threading.Event()
        written = []

        def slow_write(snapshot):
            release.wait(timeout=5)
            written.append(snapshot)

        writer = DraftWriter(slow_write)
        snapshot = {'lines': [1]}
        writer.schedule(snapshot)
        snapshot['lines'].append(2)
        release.set()
        writer.shutdown()

        assert written == [{'lines': [1]}]

    def test_write_errors_do_not_stop_the_writer(self):
        calls = []

        def flaky(snapshot):
            calls.append(snapshot)
            if len(calls) == 1:
                raise OSError("network drive gone")

        writer = DraftWriter(flaky)
        writer.schedule({'n': 1})
        writer.flush()
        writer.schedule({'n': 2})
        writer.shutdown()

        assert calls == [{'n': 1}, {'n': 2}]


class TestAttachDrafts:

    def test_engine_changes_are_saved(self, make_engine, store):
        engine = make_engine(("A100", 3))
        attach_drafts(engine, store, sync_mode=True)

        engine.process_scan("A100")

        assert store.load("A00001234")['lines'][0]['scanned'] == 1

    def test_resume_from_draft(self, make_engine, store):
        engine = make_engine(("A100", 3))
        attach_drafts(engine, store, sync_mode=True)
        engine.process_scan("A100")
        engine.process_scan("A100")

        resumed = make_engine(("A100", 3))
        resumed.restore_snapshot(store.load("A00001234"))

        assert resumed.lines[0].scanned == 2

    def test_finalize_does_not_write(self, make_engine, store):
        engine = make_engine(("A100", 1))
        attach_drafts(engine, store, sync_mode=True)
        engine.process_scan("A100")
        store.delete("A00001234")

        engine.mark_finalized()

        assert not store.exists("A00001234")
