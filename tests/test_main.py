"""
Tests for the console station: command dispatch and the entry point.
"""

from unittest.mock import MagicMock

import pytest

from exceptions import SubmissionError
from incident_processor import FlowState
from main import Station, main, parse_args
from scanner_feed import ScannerFeed


@pytest.fixture
def station(make_engine):
    def _make(*lines, client=None, finalizer=None, **kwargs):
        engine = make_engine(*lines, **kwargs)
        feed = ScannerFeed(engine, sync_mode=True)
        return Station(engine, feed, client, finalizer)
    return _make


class TestParseArgs:

    def test_folio_source(self):
        args = parse_args(['--folio', 'A1234', '--workflow', 'counting'])
        assert args.folio == 'A1234'
        assert args.workflow == 'counting'
        assert args.resume is False

    def test_source_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


class TestStation:

    def test_scans_go_to_engine(self, station):
        s = station(("A100", 2))
        assert s.handle("A-100\n") is True
        assert s.engine.lines[0].scanned == 1

    def test_blank_and_quit(self, station):
        s = station(("A100", 2))
        assert s.handle("   ") is True
        assert s.handle(":quit") is False

    def test_manual_commands_are_one_based(self, station, capsys):
        s = station(("A100", 2), ("B200", 3), workflow="order_packing")
        s.handle(":fill 2")
        s.handle(":inc 1")
        s.handle(":dec 1")
        assert [line.packed for line in s.engine.lines] == [0, 3]

    def test_bad_arguments_reported(self, station, capsys):
        s = station(("A100", 2))
        assert s.handle(":inc") is True
        assert s.handle(":inc x") is True
        assert s.handle(":") is True
        out = capsys.readouterr().out
        assert "Invalid arguments for :inc" in out

    def test_engine_errors_reported(self, station, capsys):
        s = station(("A100", 2))
        s.handle(":inc 9")
        assert "does not exist" in capsys.readouterr().out

    def test_unknown_command(self, station, capsys):
        s = station(("A100", 2))
        s.handle(":frobnicate")
        assert "Unknown command :frobnicate" in capsys.readouterr().out

    def test_incident_command(self, station):
        s = station(("A100", 10))
        s.handle(":incident missing A100 4")
        assert s.engine.lines[0].required == 4
        assert s.engine.incident_flow.state == FlowState.APPLIED

    def test_changed_incident_with_expected_code(self, station):
        s = station(("A100", 2))
        s.handle(":incident changed Z900 2 A100")
        assert s.engine.lines[0].note == "changed article: received Z900"

    def test_extra_not_invoiced(self, station):
        s = station(("A100", 1))
        s.handle(":incident extra NEW1 2 no")
        incident = s.engine.incidents.incidents[0]
        assert incident.invoiced is False

    def test_extra_invoiced_with_secret(self, station):
        s = station(("A100", 1))
        s.handle(":incident extra NEW1 2 yes s3cret")
        incident = s.engine.incidents.incidents[0]
        assert incident.invoiced is True

    def test_extra_invoiced_wrong_secret(self, station, capsys):
        s = station(("A100", 1))
        s.handle(":incident extra NEW1 2 yes guess")

        assert s.engine.incidents.incidents == []
        assert s.engine.incident_flow.state == FlowState.IDLE
        assert capsys.readouterr().out.startswith("! ")

    def test_extra_needs_billing_answer(self, station, capsys):
        s = station(("A100", 1))
        s.handle(":incident extra NEW1 2")
        s.handle(":incident extra NEW1 2 maybe")

        assert s.engine.incidents.incidents == []
        assert s.engine.incident_flow.state == FlowState.IDLE
        assert capsys.readouterr().out.count("Invalid arguments for :incident") == 2

    def test_container_command_outside_container_workflows(self, station, capsys):
        s = station(("A100", 1), workflow="counting")
        s.handle(":container")
        assert "does not use containers" in capsys.readouterr().out

    def test_add_with_quantity(self, station):
        s = station(("A100", 1), workflow="counting")
        s.handle(":add N-1 5")
        assert s.engine.lines[1].code == "N1"
        assert s.engine.lines[1].required == 5

    def test_add_from_catalog_lookup(self, station):
        client = MagicMock()
        client.lookup_article.return_value = {'code': 'N1', 'name': 'Nuevo'}
        s = station(("A100", 1), client=client, workflow="counting")

        s.handle(":add N1")

        client.lookup_article.assert_called_once_with("N1")
        assert s.engine.lines[1].name == "Nuevo"

    def test_add_unknown_article(self, station, capsys):
        s = station(("A100", 1), client=MagicMock(**{'lookup_article.return_value': None}), workflow="counting")
        s.handle(":add N1")
        assert "not found in the catalog" in capsys.readouterr().out
        assert len(s.engine.lines) == 1

    def test_container_commands(self, station):
        s = station(("A100", 3), workflow="manual_receiving", container_catalog={'CAJA-CH': 'small box'})
        s.handle("CAJA-CH")
        s.handle("A100")
        s.handle(":container")
        s.handle("A100")
        s.handle("CAJA-CH")
        s.handle(":switch BOX-0001")
        s.handle("A100")

        first, second = s.engine.containers.instances
        assert first.manifest == {"A100": 2}
        assert second.manifest == {}

    def test_report_and_labels(self, station, tmp_path, capsys):
        s = station(("A100", 3), workflow="manual_receiving", container_catalog={'CAJA-CH': 'small box'})
        s.handle("CAJA-CH")
        s.handle(f":report {tmp_path / 'report.xlsx'}")
        s.handle(f":labels {tmp_path / 'labels'}")

        assert (tmp_path / 'report.xlsx').exists()
        assert (tmp_path / 'labels' / 'BOX-0001.png').exists()

    def test_finalize_without_backend(self, station, capsys):
        s = station(("A100", 1))
        s.handle(":finalize")
        assert "No backend configured" in capsys.readouterr().out

    def test_finalize_prints_summary(self, station, capsys):
        finalizer = MagicMock()
        s = station(("A100", 1), finalizer=finalizer)
        s.handle("A100")
        s.handle(":finalize")

        finalizer.submit.assert_called_once()
        assert "Incredible speed!" in capsys.readouterr().out

    def test_finalize_failure_message(self, station, capsys):
        finalizer = MagicMock()
        finalizer.submit.side_effect = SubmissionError("server error 503")
        s = station(("A100", 1), finalizer=finalizer)
        s.handle(":finalize")
        assert "server error 503" in capsys.readouterr().out


class TestMain:

    def test_runs_from_excel(self, qapp, tmp_path, monkeypatch, capsys):
        import io
        import pandas as pd

        sheet = tmp_path / "list.xlsx"
        pd.DataFrame({'code': ['A-100'], 'quantity': [1]}).to_excel(sheet, index=False)
        config = tmp_path / "config.ini"
        config.write_text(f"[Drafts]\nDraftDir = {tmp_path / 'drafts'}\n", encoding='utf-8')
        monkeypatch.setattr('sys.stdin', io.StringIO("A100\n:quit\n"))

        assert main(['--file', str(sheet), '--config', str(config)]) == 0
        assert "DOCUMENT_COMPLETE" in capsys.readouterr().out

    def test_folio_needs_backend(self, qapp, tmp_path):
        config = tmp_path / "config.ini"
        config.write_text("", encoding='utf-8')
        assert main(['--folio', 'A1234', '--config', str(config)]) == 2
