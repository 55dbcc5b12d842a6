"""
Tests for workflow presets.
"""

import pytest

from exceptions import ConfigurationError
from reconciliation_config import (
    WORKFLOW_PRESETS,
    OverflowPolicy,
    ReconciliationConfig,
    RequirementMeasure,
)


class TestPresets:

    @pytest.mark.parametrize("workflow", sorted(WORKFLOW_PRESETS))
    def test_preset_names_match(self, workflow):
        assert ReconciliationConfig.for_workflow(workflow).workflow == workflow

    def test_counting_is_elastic_and_editable(self):
        config = ReconciliationConfig.for_workflow("counting")
        assert config.overflow_policy == OverflowPolicy.ELASTIC
        assert config.allow_manual_add
        assert config.allow_line_removal

    def test_order_packing_completes_on_packed(self):
        config = ReconciliationConfig.for_workflow("order_packing")
        assert config.requirement_measure == RequirementMeasure.PACKED
        assert config.verify_availability

    def test_overrides(self):
        config = ReconciliationConfig.for_workflow("receiving", overflow_policy=OverflowPolicy.ELASTIC)
        assert config.overflow_policy == OverflowPolicy.ELASTIC
        assert WORKFLOW_PRESETS["receiving"].overflow_policy == OverflowPolicy.STRICT

    def test_unknown_workflow(self):
        with pytest.raises(ConfigurationError, match="Unknown workflow"):
            ReconciliationConfig.for_workflow("shipping")
