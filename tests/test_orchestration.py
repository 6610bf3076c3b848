import json
from datetime import datetime
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from conftest import FakePromptClient
from fabritrack.contracts import ProductionRecord
from fabritrack.flows.cnc_parameters import CncParametersFlow, CncParametersInput
from fabritrack.flows.machining_time import MachiningTimeFlow, MachiningTimeInput
from fabritrack.flows.machining_time_from_image import (
    MachiningTimeFromImageFlow,
    MachiningTimeFromImageOutput,
)
from fabritrack.flows.production_parameters import ProductionParametersFlow
from fabritrack.flows.time_estimator import TimeEstimatorFlow
from fabritrack.orchestration import AIServiceError, PromptOrchestrator, historical_data_from_records
from fabritrack.prompt_client import OpenAIPromptClient
from fabritrack.registry import FlowRegistry

DRAWING = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAAB"

IMAGE_REPLY = {
    "total_time_minutes": 95,
    "setup_time_minutes": 30,
    "machining_time_minutes": 50,
    "programming_time_minutes": 15,
    "notes": "Eixo simples com um rebaixo e chanfros.",
}

CNC_INPUT = {
    "geometry": {
        "shape": "cilíndrico",
        "external_diameter": "50",
        "length": "120",
        "tolerances": "h7",
    },
    "machine": {
        "machine_type": "Torno CNC",
        "model": "Centur 30",
        "axes": "2 eixos",
        "speed_torque_limits": "3500 rpm",
    },
    "tools": {"type": "pastilha", "diameter": "12", "material": "Metal Duro", "tip_radius": "0.8"},
    "spindle": {"max_rpm": "3500", "feed_per_minute": "200"},
    "operation_params": {"machining_strategy": ["desbaste", "acabamento"], "threading_pitch": "1.5"},
    "tool_change_time": "8",
    "operations": ["faceamento", "torneamento externo"],
    "material": "Aço 1045",
    "pieces_per_cycle": 1,
}


def _orchestrator(client):
    registry = FlowRegistry()
    for flow_cls in (
        MachiningTimeFromImageFlow,
        MachiningTimeFlow,
        CncParametersFlow,
        ProductionParametersFlow,
        TimeEstimatorFlow,
    ):
        registry.register(flow_cls)
    return PromptOrchestrator(registry, client)


def test_run_returns_validated_output():
    client = FakePromptClient(reply=IMAGE_REPLY)
    result = _orchestrator(client).run(
        "estimate_machining_time_from_image",
        {"photo_data_uri": DRAWING, "machine_type": "Torno CNC - Centur 30"},
    )
    assert isinstance(result, MachiningTimeFromImageOutput)
    assert result.total_time_minutes == 95
    assert client.calls[0]["media"] == [DRAWING]
    assert "Torno CNC - Centur 30" in client.calls[0]["prompt"]
    assert "total_time_minutes" in client.calls[0]["schema"]["properties"]


def test_invalid_input_raises_validation_error_without_calling_client():
    client = FakePromptClient(reply=IMAGE_REPLY)
    with pytest.raises(ValidationError):
        _orchestrator(client).run(
            "estimate_machining_time_from_image",
            {"photo_data_uri": "not-a-data-uri", "machine_type": "Torno CNC - Centur 30"},
        )
    assert client.calls == []


def test_upstream_failure_becomes_generic_ai_service_error():
    client = FakePromptClient(error=RuntimeError("quota exceeded for key sk-123"))
    with pytest.raises(AIServiceError) as exc_info:
        _orchestrator(client).run("optimize_production_parameters", {"historical_data": "x"})
    assert "sk-123" not in str(exc_info.value)
    assert exc_info.value.flow_name == "optimize_production_parameters"


def test_invalid_output_becomes_ai_service_error():
    client = FakePromptClient(reply={"total_time_minutes": "muito"})
    with pytest.raises(AIServiceError):
        _orchestrator(client).run(
            "estimate_production_time",
            {"quantity": 10, "material": "Aço", "tolerance": "0.05", "technical_drawing_data_uri": DRAWING},
        )


def test_machining_time_requires_lathe_parameters():
    with pytest.raises(ValidationError):
        MachiningTimeInput(machine_type="Torno CNC - Centur 30", material="Aço", part_diameter=40)
    data = MachiningTimeInput(
        machine_type="Torno CNC - Centur 30",
        material="Aço",
        part_diameter=40,
        part_length=100,
        operation_count=3,
    )
    assert "Diâmetro da peça: 40.0 mm" in MachiningTimeFlow().render_prompt(data)


def test_machining_time_requires_center_parameters():
    with pytest.raises(ValidationError):
        MachiningTimeInput(machine_type="Centro de Usinagem D600", material="Alumínio", tool_count=4)
    data = MachiningTimeInput(
        machine_type="Centro de Usinagem D600",
        material="Alumínio",
        part_dimensions={"width": 100, "height": 50, "depth": 20},
        tool_count=4,
    )
    assert "Ferramentas (trocas): 4" in MachiningTimeFlow().render_prompt(data)


def test_cnc_prompt_mentions_threading_only_when_requested():
    flow = CncParametersFlow()
    plain = CncParametersInput.model_validate(CNC_INPUT)
    assert "Rosqueamento" not in flow.render_prompt(plain)

    threaded = CncParametersInput.model_validate({**CNC_INPUT, "operations": ["rosqueamento"]})
    assert "Rosqueamento: passo 1.5" in flow.render_prompt(threaded)


def test_historical_data_from_records():
    record = ProductionRecord(
        id="r1",
        requesting_factory="Igarassu",
        part_name="Eixo",
        material="Aço 1045",
        manufacturing_time=2.5,
        date=datetime(2024, 7, 20),
        quantity=10,
        centro_time=2.0,
        torno_time=0.5,
        programacao_time=0.0,
    )
    assert historical_data_from_records([record]) == (
        "Peça: Eixo, Material: Aço 1045, Fábrica: Igarassu, Tempo: 2.50h"
    )
    with pytest.raises(ValueError):
        historical_data_from_records([])


def test_optimize_from_history_with_no_records():
    client = FakePromptClient()
    with pytest.raises(ValueError):
        _orchestrator(client).optimize_from_history([])
    assert client.calls == []


def test_openai_prompt_client_builds_multimodal_request():
    captured = {}

    def create(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content=json.dumps({"recommended_parameters": "a", "reasoning": "b"}))
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    fake = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    client = OpenAIPromptClient(model="gpt-test", client=fake)

    reply = client.generate("prompt text", [DRAWING], {"type": "object"})

    assert reply == {"recommended_parameters": "a", "reasoning": "b"}
    assert captured["model"] == "gpt-test"
    assert captured["response_format"] == {"type": "json_object"}
    content = captured["messages"][1]["content"]
    assert content[0]["type"] == "text"
    assert content[1] == {"type": "image_url", "image_url": {"url": DRAWING}}
