"""
Console scan station.

Reads scans from stdin, one per line, and applies them to a document fetched
from the backend (--folio) or loaded from a spreadsheet (--file). Lines that
start with ':' are station commands:

    :inc N / :dec N / :fill N     manual packing on line N (1-based)
    :container                    expect a container code next
    :switch BOX-0002              make another open container active
    :incident TYPE CODE QTY [EXPECTED]
    :incident extra CODE QTY yes|no [SECRET]   invoiced extras need the secret
    :add CODE [QTY]               add an article not on the document
    :remove N                     remove line N (counting only)
    :labels DIR                   print container labels into DIR
    :report PATH                  export the lines to Excel
    :status                       progress and lines
    :finalize                     submit to the backend
    :quit
"""

import argparse
import sys

from PySide6.QtCore import QCoreApplication

from backend_client import BackendClient
from code_normalizer import normalize_folio
from container_labels import LabelGenerator
from draft_store import DraftStore, attach_drafts
from exceptions import ReconcilerError, SubmissionError
from finalization import FinalizationManager
from incident_processor import FlowState
from line_registry import LineRegistry
from logger import clear_logging_context, get_logger, set_document_context, set_warehouse_context
from models import IncidentType
from reconciliation_config import WORKFLOW_PRESETS, ReconciliationConfig
from reconciliation_engine import ReconciliationEngine
from scanner_feed import ScannerFeed
from session_summary import build_summary, export_report
from settings import load_settings

logger = get_logger(__name__)

INVOICED_ANSWERS = {'yes': True, 'y': True, 'no': False, 'n': False}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconcile barcode scans against a warehouse document.")
    parser.add_argument('--workflow', choices=sorted(WORKFLOW_PRESETS), default='receiving')
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--folio', help="Document folio to fetch from the backend")
    source.add_argument('--file', help="Excel packing list to load instead of the backend")
    parser.add_argument('--config', default='config.ini', help="Path to config.ini")
    parser.add_argument('--resume', action='store_true', help="Resume from a saved draft if one exists")
    return parser.parse_args(argv)


def print_status(engine: ReconciliationEngine):
    progress = engine.progress()
    print(f"{engine.header.folio}: {progress['lines_complete']}/{progress['lines_total']} lines, "
          f"{progress['units_done']}/{progress['units_required']} units")
    for number, line in enumerate(engine.registry, start=1):
        index = number - 1
        mark = 'x' if engine.completion.is_line_complete(index) else ' '
        print(f"  [{mark}] {number:3d} {line.code:<16} {engine.completion.measure(index)}/"
              f"{engine.completion.effective_target(index)} {line.note}")


class Station:
    """Dispatches console input to the engine."""

    def __init__(self, engine: ReconciliationEngine, feed: ScannerFeed, client=None, finalizer=None):
        self.engine = engine
        self.feed = feed
        self.client = client
        self.finalizer = finalizer

    def handle(self, text: str) -> bool:
        """Handle one input line; returns False when the station should stop."""
        text = text.strip()
        if not text:
            return True
        if not text.startswith(':'):
            self.feed.submit(text)
            self.feed.drain()
            return True

        command, *args = text[1:].split() or ['']
        try:
            return self._dispatch(command.lower(), args)
        except ReconcilerError as e:
            print(f"! {e}")
        except (IndexError, ValueError):
            print(f"! Invalid arguments for :{command}")
        return True

    def _dispatch(self, command: str, args) -> bool:
        engine = self.engine
        if command == 'quit':
            return False
        if command in ('inc', 'dec', 'fill'):
            operation = {'inc': engine.increment, 'dec': engine.decrement, 'fill': engine.fill_to_required}[command]
            outcome = operation(int(args[0]) - 1)
            if outcome.message:
                print(f"! {outcome.message}")
        elif command == 'container':
            engine.begin_add_container()
            print("Scan a container code")
        elif command == 'switch':
            engine.containers.switch_to(args[0])
        elif command == 'incident':
            incident = self._incident(args)
            print(f"Incident recorded: {incident.incident_type.value} {incident.code}")
        elif command == 'add':
            self._add(args)
        elif command == 'remove':
            line = engine.remove_line(int(args[0]) - 1)
            print(f"Removed {line.code}")
        elif command == 'labels':
            for path in LabelGenerator(args[0], engine.settings).generate_all(engine.containers.instances):
                print(f"Label: {path}")
        elif command == 'report':
            print(f"Report: {export_report(engine, args[0])}")
        elif command == 'status':
            print_status(engine)
        elif command == 'finalize':
            self._finalize()
        else:
            print(f"! Unknown command :{command}")
        return True

    def _incident(self, args):
        """Walk the incident flow with the answers given on the command line."""
        incident_type = IncidentType(args[0].lower())
        code, quantity = args[1], args[2]
        flow = self.engine.begin_incident()
        try:
            flow.select_type(incident_type)
            expected = None
            if incident_type == IncidentType.EXTRA:
                answer = args[3].lower()
                if answer not in INVOICED_ANSWERS:
                    raise ValueError(answer)
                flow.confirm_billing(INVOICED_ANSWERS[answer])
                if flow.state == FlowState.AUTHORIZATION:
                    flow.authorize(args[4] if len(args) > 4 else '')
            elif len(args) > 3:
                expected = args[3]
            return flow.submit(code, quantity, expected_code=expected)
        finally:
            if flow.state != FlowState.APPLIED:
                flow.cancel()

    def _add(self, args):
        code = args[0]
        if len(args) > 1:
            self.engine.add_line(code, quantity=args[1])
            return
        article = self.client.lookup_article(code) if self.client else None
        if article is None:
            print(f"! Article {code} not found in the catalog")
            return
        self.engine.add_from_catalog(article)

    def _finalize(self):
        if self.finalizer is None:
            print("! No backend configured, cannot finalize")
            return
        try:
            self.finalizer.submit()
        except SubmissionError as e:
            print(f"! {e.get_display_message()}")
            return
        summary = build_summary(self.engine)
        print(summary['title'])
        print(summary['message'])


def on_scan(text, result, status):
    line = f"{status}: {result.code}"
    if result.message:
        line += f" ({result.message})"
    print(line)


def main(argv=None) -> int:
    args = parse_args(argv)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    settings = load_settings(args.config)
    client = None
    if settings.base_url:
        client = BackendClient(settings)

    try:
        if args.folio:
            if client is None:
                print("[Backend] BaseUrl must be set to fetch documents", file=sys.stderr)
                return 2
            header, rows = client.fetch_document(normalize_folio(args.folio))
            registry = LineRegistry.from_rows(header, rows)
            content_index = client.fetch_container_index()
        else:
            registry = LineRegistry.from_excel(args.file)
            content_index = None
    except ReconcilerError as e:
        logger.error(f"Could not load document: {e}")
        print(f"Could not load document: {e}", file=sys.stderr)
        return 1

    set_warehouse_context(registry.header.warehouse or None)
    set_document_context(registry.header.folio)

    engine = ReconciliationEngine(
        registry,
        ReconciliationConfig.for_workflow(args.workflow),
        content_index=content_index,
        container_catalog=settings.container_catalog,
        settings=settings,
    )

    drafts = DraftStore(settings.draft_dir)
    if args.resume:
        snapshot = drafts.load(registry.header.folio)
        if snapshot:
            engine.restore_snapshot(snapshot)
            print(f"Resumed draft for {registry.header.folio}")
    writer = attach_drafts(engine, drafts)

    finalizer = FinalizationManager(engine, client, drafts) if client else None
    feed = ScannerFeed(engine, on_result=on_scan)
    station = Station(engine, feed, client, finalizer)
    engine.document_completed.connect(lambda: print("Document complete, ready to finalize"))

    print_status(engine)
    try:
        for text in sys.stdin:
            if not station.handle(text):
                break
            app.processEvents()
    except KeyboardInterrupt:
        print()
    finally:
        feed.shutdown()
        writer.shutdown()
        clear_logging_context()

    return 0


if __name__ == "__main__":
    sys.exit(main())
