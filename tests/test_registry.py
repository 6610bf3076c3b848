import pytest

from fabritrack.flows.cnc_parameters import CncParametersFlow
from fabritrack.flows.machining_time import MachiningTimeFlow
from fabritrack.flows.machining_time_from_image import MachiningTimeFromImageFlow
from fabritrack.flows.production_parameters import ProductionParametersFlow
from fabritrack.flows.time_estimator import TimeEstimatorFlow
from fabritrack.registry import FlowNotFoundError, FlowRegistry


def test_register_and_resolve():
    registry = FlowRegistry()
    registry.register(MachiningTimeFlow)
    registry.register(CncParametersFlow)

    flow = registry.resolve("predict_machining_time")
    assert flow.name == "predict_machining_time"

    flow2 = registry.resolve("generate_cnc_parameters")
    assert flow2.name == "generate_cnc_parameters"


def test_keys_sorted():
    registry = FlowRegistry()
    registry.register(TimeEstimatorFlow)
    registry.register(ProductionParametersFlow)
    registry.register(MachiningTimeFromImageFlow)
    assert registry.keys() == [
        "estimate_machining_time_from_image",
        "estimate_production_time",
        "optimize_production_parameters",
    ]


def test_unknown_raises_flow_not_found_error():
    registry = FlowRegistry()
    with pytest.raises(FlowNotFoundError) as exc_info:
        registry.resolve("UNKNOWN_FLOW")
    assert exc_info.value.flow_name == "UNKNOWN_FLOW"


def test_duplicate_registration_rejected():
    registry = FlowRegistry()
    flow = registry.register(MachiningTimeFlow)
    assert registry.resolve("predict_machining_time") is flow
    with pytest.raises(ValueError):
        registry.register(MachiningTimeFlow)


def test_describe_exposes_input_and_output_schemas():
    registry = FlowRegistry()
    registry.register(TimeEstimatorFlow)
    described = registry.describe("estimate_production_time")
    assert described["name"] == "estimate_production_time"
    assert "quantity" in described["input_schema"]["properties"]
    assert "total_time_minutes" in described["output_schema"]["properties"]
    with pytest.raises(FlowNotFoundError):
        registry.describe("UNKNOWN_FLOW")
