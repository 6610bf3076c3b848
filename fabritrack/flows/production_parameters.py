from pydantic import BaseModel, Field

from fabritrack.flows.base import PromptFlow


class ProductionParametersInput(BaseModel):
    historical_data: str = Field(min_length=1)


class ProductionParametersOutput(BaseModel):
    recommended_parameters: str
    reasoning: str


class ProductionParametersFlow(PromptFlow):
    input_model = ProductionParametersInput
    output_model = ProductionParametersOutput

    @property
    def name(self) -> str:
        return "optimize_production_parameters"

    def render_prompt(self, data: ProductionParametersInput) -> str:
        return (
            "Analise os dados históricos de produção abaixo e recomende parâmetros de\n"
            "fabricação que reduzam o tempo de produção. Explique o raciocínio em detalhe.\n\n"
            f"Dados históricos:\n{data.historical_data}"
        )
