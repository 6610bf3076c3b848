from pydantic import BaseModel, Field, field_validator

from fabritrack.flows.base import PromptFlow, check_data_uri


class ProductionTimeInput(BaseModel):
    quantity: int = Field(gt=0)
    material: str = Field(min_length=1)
    tolerance: str = Field(min_length=1)
    technical_drawing_data_uri: str

    @field_validator("technical_drawing_data_uri")
    @classmethod
    def _data_uri(cls, value: str) -> str:
        return check_data_uri(value)


class ProductionTimeOutput(BaseModel):
    total_time_minutes: float = Field(ge=0)
    justification: str


class TimeEstimatorFlow(PromptFlow):
    """Batch estimate for the ROMI Centur 30D lathe.

    total = setup and programming time + quantity * cycle time per piece
    """

    input_model = ProductionTimeInput
    output_model = ProductionTimeOutput

    @property
    def name(self) -> str:
        return "estimate_production_time"

    def render_prompt(self, data: ProductionTimeInput) -> str:
        return "\n".join(
            [
                "Você é um engenheiro de produção sênior, especialista no Torno CNC ROMI CENTUR 30D.",
                "Limitações conhecidas: placa e contraponto manuais, poucas ferramentas disponíveis,",
                "operador com ritmo cuidadoso, programação em pé de máquina e sobremetal de 5 mm",
                "no diâmetro e no comprimento.",
                "Determine um tempo fixo de setup e programação e um tempo de ciclo por peça.",
                "Tempo total = setup e programação + quantidade x tempo de ciclo.",
                "Retorne o tempo total em minutos e uma breve justificativa.",
                f"Quantidade: {data.quantity}",
                f"Material: {data.material}",
                f"Tolerância: {data.tolerance}",
                "Desenho técnico em anexo.",
            ]
        )

    def media(self, data: ProductionTimeInput) -> list[str]:
        return [data.technical_drawing_data_uri]
