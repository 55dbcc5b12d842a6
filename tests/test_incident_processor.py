"""Tests for incident validation, application and the incident dialog flow."""

import pytest

from completion_detector import CompletionDetector
from conftest import make_registry
from exceptions import AuthorizationError, ReconcilerError, ValidationError
from incident_processor import FlowState, IncidentFlow, IncidentProcessor
from models import Incident, IncidentType
from quantity_ledger import QuantityLedger
from reconciliation_config import ReconciliationConfig, RequirementMeasure


@pytest.fixture
def setup():
    registry = make_registry(("A100", 10), ("B200", 4))
    registry[1].name = "Tuerca"
    ledger = QuantityLedger(registry, ReconciliationConfig())
    processor = IncidentProcessor(registry, ledger)
    detector = CompletionDetector(registry, ledger.config)
    return registry, ledger, processor, detector


class TestMissing:

    def test_missing_reduces_requirement_and_completes_line(self, setup):
        registry, ledger, processor, detector = setup
        for _ in range(5):
            ledger.apply_scan(0)

        processor.create(IncidentType.MISSING, "A100", 7)

        line = registry[0]
        assert (line.required, line.scanned, line.packed) == (7, 7, 7)
        assert line.note == "short-shipped: original 10, received 7"
        assert detector.is_line_complete(0)

    def test_missing_zero_allowed(self, setup):
        registry, _, processor, detector = setup
        processor.create(IncidentType.MISSING, "A100", 0)
        assert registry[0].required == 0
        assert detector.is_line_complete(0)

    def test_missing_negative_rejected(self, setup):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError):
            processor.create(IncidentType.MISSING, "A100", -1)
        assert processor.incidents == []


class TestChanged:

    def test_changed_marks_expected_line_done(self, setup):
        registry, _, processor, detector = setup
        processor.create(IncidentType.CHANGED, "Z-900", 4, expected_code="B200", name="Tuerca grande")

        line = registry[1]
        assert line.scanned == 4
        assert line.packed == 4
        assert line.note == "changed article: received Z900 (Tuerca grande)"
        assert detector.is_line_complete(1)

    def test_changed_records_expected_name(self, setup):
        _, _, processor, _ = setup
        incident = processor.create(IncidentType.CHANGED, "Z900", 1, expected_code="B200")
        assert incident.expected_name == "Tuerca"
        assert incident.expected_code == "B200"

    def test_changed_needs_expected_code(self, setup):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError, match="expected article"):
            processor.create(IncidentType.CHANGED, "Z900", 1)

    def test_changed_expected_must_be_on_document(self, setup):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError, match="not on this document"):
            processor.create(IncidentType.CHANGED, "Z900", 1, expected_code="NOPE")


class TestReturn:

    def test_return_excludes_units(self, setup):
        registry, ledger, processor, detector = setup
        for _ in range(4):
            ledger.apply_scan(1)

        processor.create(IncidentType.RETURN, "B200", 3)

        line = registry[1]
        assert line.scanned == 0
        assert line.returned == 3
        assert line.target == 1
        assert line.note == "returned: original 4, returned 3"
        ledger.apply_scan(1)
        assert detector.is_line_complete(1)

    def test_return_clamps_packed_to_new_target(self):
        registry = make_registry(("A100", 5))
        config = ReconciliationConfig(requirement_measure=RequirementMeasure.PACKED)
        ledger = QuantityLedger(registry, config)
        processor = IncidentProcessor(registry, ledger)
        detector = CompletionDetector(registry, config)
        for _ in range(5):
            ledger.apply_scan(0)
        assert detector.is_document_complete()

        processor.create(IncidentType.RETURN, "A100", 2)

        line = registry[0]
        assert (line.required, line.returned, line.scanned, line.packed) == (5, 2, 0, 3)
        assert detector.is_line_complete(0)
        assert detector.is_document_complete()

    def test_return_capped_at_required(self, setup):
        registry, _, processor, detector = setup
        processor.create(IncidentType.RETURN, "B200", 9)
        assert registry[1].returned == 4
        assert detector.is_line_complete(1)


class TestExtra:

    def test_extra_is_audit_only(self, setup):
        registry, ledger, processor, _ = setup
        revision = ledger.revision
        incident = processor.create(IncidentType.EXTRA, "NEW-1", 2, invoiced=False)

        assert incident in processor.incidents
        assert ledger.revision == revision
        assert registry.index_of("NEW1") is None

    def test_extra_needs_billing_answer(self, setup):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError, match="invoiced"):
            processor.create(IncidentType.EXTRA, "NEW1", 2)


class TestValidation:

    @pytest.mark.parametrize("quantity", [0, -2, "abc", 1.5, None, True])
    def test_bad_quantities(self, setup, quantity):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError):
            processor.create(IncidentType.RETURN, "A100", quantity)

    def test_quantity_from_form_text(self, setup):
        _, _, processor, _ = setup
        incident = processor.create(IncidentType.RETURN, "A100", " 2 ")
        assert incident.quantity == 2

    def test_code_required(self, setup):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError, match="code is required"):
            processor.create(IncidentType.MISSING, "  ", 1)

    def test_missing_target_must_exist(self, setup):
        _, _, processor, _ = setup
        with pytest.raises(ValidationError, match="not on this document"):
            processor.create(IncidentType.MISSING, "NOPE", 1)


class TestIdempotency:

    def test_same_incident_applied_once(self, setup):
        registry, _, processor, _ = setup
        incident = Incident(incident_id="fixed", incident_type=IncidentType.RETURN, code="A100", quantity=2)

        assert processor.apply(incident) is True
        assert processor.apply(incident) is False

        assert registry[0].returned == 2
        assert len(processor.incidents) == 1

    def test_restore_does_not_reapply(self, setup):
        registry, _, processor, _ = setup
        processor.create(IncidentType.MISSING, "A100", 3)
        saved = processor.to_list()
        registry[0].required = 10

        processor.restore(saved)

        assert registry[0].required == 10
        assert processor.missing_quantities == {"A100": 3}
        assert processor.apply(processor.incidents[0]) is False

    def test_counts_by_type(self, setup):
        _, _, processor, _ = setup
        processor.create(IncidentType.MISSING, "A100", 3)
        processor.create(IncidentType.EXTRA, "X", 1, invoiced=True)
        assert processor.counts_by_type() == {'extra': 1, 'changed': 0, 'missing': 1, 'return': 0}


class TestIncidentFlow:

    @pytest.fixture
    def flow(self, setup):
        _, _, processor, _ = setup
        return IncidentFlow(processor, authorization_secret="s3cret")

    def test_non_extra_goes_straight_to_data_entry(self, flow):
        flow.begin()
        flow.select_type(IncidentType.MISSING)
        assert flow.state == FlowState.DATA_ENTRY

        incident = flow.submit("A100", 4)

        assert flow.state == FlowState.APPLIED
        assert incident.incident_type == IncidentType.MISSING

    def test_extra_not_invoiced_skips_authorization(self, flow):
        flow.begin()
        flow.select_type(IncidentType.EXTRA)
        assert flow.state == FlowState.BILLING_CONFIRMATION
        flow.confirm_billing(False)
        assert flow.state == FlowState.DATA_ENTRY

        incident = flow.submit("NEW1", 1)
        assert incident.invoiced is False

    def test_invoiced_extra_requires_authorization(self, flow):
        flow.begin()
        flow.select_type(IncidentType.EXTRA)
        flow.confirm_billing(True)
        assert flow.state == FlowState.AUTHORIZATION

        with pytest.raises(AuthorizationError):
            flow.authorize("wrong")
        assert flow.state == FlowState.AUTHORIZATION

        flow.authorize("s3cret")
        assert flow.state == FlowState.DATA_ENTRY
        assert flow.submit("NEW1", 2).invoiced is True

    def test_no_secret_configured_blocks_invoiced_extra(self, setup):
        _, _, processor, _ = setup
        flow = IncidentFlow(processor)
        flow.begin()
        flow.select_type(IncidentType.EXTRA)
        flow.confirm_billing(True)
        with pytest.raises(AuthorizationError):
            flow.authorize("")

    def test_cancel_from_any_state_has_no_side_effects(self, setup, flow):
        registry, ledger, processor, _ = setup
        revision = ledger.revision
        flow.begin()
        flow.select_type(IncidentType.EXTRA)
        flow.confirm_billing(True)

        flow.cancel()

        assert flow.state == FlowState.IDLE
        assert flow.incident_type is None
        assert processor.incidents == []
        assert ledger.revision == revision

    def test_validation_error_keeps_data_entry(self, flow):
        flow.begin()
        flow.select_type(IncidentType.RETURN)
        with pytest.raises(ValidationError):
            flow.submit("A100", 0)
        assert flow.state == FlowState.DATA_ENTRY

    def test_out_of_order_step_rejected(self, flow):
        with pytest.raises(ReconcilerError):
            flow.select_type(IncidentType.MISSING)

    def test_begin_again_after_applied(self, flow):
        flow.begin()
        flow.select_type(IncidentType.MISSING)
        flow.submit("A100", 4)
        flow.begin()
        assert flow.state == FlowState.SELECTING_TYPE
