import logging
from typing import Iterable

from pydantic import BaseModel

from fabritrack.contracts import ProductionRecord
from fabritrack.prompt_client import PromptClient
from fabritrack.registry import FlowRegistry

logger = logging.getLogger(__name__)

OPTIMIZE_FLOW = "optimize_production_parameters"


class AIServiceError(Exception):
    def __init__(self, flow_name: str):
        super().__init__("Ocorreu um erro ao comunicar com a IA. Tente novamente.")
        self.flow_name = flow_name


def historical_data_from_records(records: Iterable[ProductionRecord]) -> str:
    lines = [
        f"Peça: {r.part_name}, Material: {r.material}, "
        f"Fábrica: {r.requesting_factory}, Tempo: {r.manufacturing_time:.2f}h"
        for r in records
    ]
    if not lines:
        raise ValueError("Não há dados de produção suficientes para otimização.")
    return "\n".join(lines)


class PromptOrchestrator:
    def __init__(self, registry: FlowRegistry, client: PromptClient):
        self._registry = registry
        self._client = client

    def run(self, flow_name: str, payload: dict) -> BaseModel:
        flow = self._registry.resolve(flow_name)
        # input errors are the caller's; they surface as ValidationError
        data = flow.input_model.model_validate(payload)

        try:
            reply = self._client.generate(
                flow.render_prompt(data),
                flow.media(data),
                flow.output_model.model_json_schema(),
            )
            return flow.output_model.model_validate(reply)
        except Exception as exc:
            logger.exception("prompt flow %r failed", flow_name)
            raise AIServiceError(flow_name) from exc

    def optimize_from_history(self, records: Iterable[ProductionRecord]) -> BaseModel:
        historical_data = historical_data_from_records(records)
        return self.run(OPTIMIZE_FLOW, {"historical_data": historical_data})
