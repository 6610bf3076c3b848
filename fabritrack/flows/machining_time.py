from pydantic import BaseModel, Field, model_validator

from fabritrack.flows.base import PromptFlow
from fabritrack.flows.machining_time_from_image import MachineType

TORNO = "Torno CNC - Centur 30"
CENTRO = "Centro de Usinagem D600"


class PartDimensions(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    depth: float = Field(gt=0)


class MachiningTimeInput(BaseModel):
    machine_type: MachineType
    material: str = Field(min_length=1)
    # lathe
    part_diameter: float | None = Field(default=None, gt=0)
    part_length: float | None = Field(default=None, gt=0)
    operation_count: int | None = Field(default=None, gt=0)
    # machining center
    part_dimensions: PartDimensions | None = None
    tool_count: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _machine_parameters(self):
        if self.machine_type == TORNO:
            required = (self.part_diameter, self.part_length, self.operation_count)
        else:
            required = (self.part_dimensions, self.tool_count)
        if any(value is None for value in required):
            raise ValueError("Parâmetros incompletos para o tipo de máquina selecionado.")
        return self


class MachiningTimeOutput(BaseModel):
    total_time_minutes: float = Field(ge=0)
    setup_time_minutes: float = Field(ge=0)
    machining_time_minutes: float = Field(ge=0)
    notes: str


class MachiningTimeFlow(PromptFlow):
    input_model = MachiningTimeInput
    output_model = MachiningTimeOutput

    @property
    def name(self) -> str:
        return "predict_machining_time"

    def render_prompt(self, data: MachiningTimeInput) -> str:
        lines = [
            "Você é um engenheiro de produção especialista em usinagem CNC, com domínio do",
            "Torno CNC Centur 30 e do Centro de Usinagem D600.",
            f"Máquina: {data.machine_type}",
            f"Material da peça: {data.material}",
        ]
        if data.machine_type == TORNO:
            lines += [
                "Torno de 3 eixos para torneamento, rosqueamento, faceamento e sangramento.",
                f"Diâmetro da peça: {data.part_diameter} mm",
                f"Comprimento da peça: {data.part_length} mm",
                f"Operações de torneamento: {data.operation_count}",
            ]
        else:
            dims = data.part_dimensions
            lines += [
                "Centro de usinagem para fresamento, furação e cavidades.",
                f"Dimensões (L x A x P): {dims.width} x {dims.height} x {dims.depth} mm",
                f"Ferramentas (trocas): {data.tool_count}",
            ]
        lines += [
            "Calcule em minutos o tempo de setup e o tempo de usinagem; o total é a soma dos dois.",
            "Nas observações, indique avanço, rotação e profundidade de corte recomendados",
            "e pontos de atenção como refrigeração e desgaste de ferramenta.",
        ]
        return "\n".join(lines)
