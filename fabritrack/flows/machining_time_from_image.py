from typing import Literal

from pydantic import BaseModel, Field, field_validator

from fabritrack.flows.base import PromptFlow, check_data_uri

MachineType = Literal["Torno CNC - Centur 30", "Centro de Usinagem D600"]


class MachiningTimeFromImageInput(BaseModel):
    photo_data_uri: str
    machine_type: MachineType
    operation_description: str | None = None

    @field_validator("photo_data_uri")
    @classmethod
    def _data_uri(cls, value: str) -> str:
        return check_data_uri(value)


class MachiningTimeFromImageOutput(BaseModel):
    total_time_minutes: float = Field(ge=0)
    setup_time_minutes: float = Field(ge=0)
    machining_time_minutes: float = Field(ge=0)
    programming_time_minutes: float = Field(ge=0)
    notes: str


class MachiningTimeFromImageFlow(PromptFlow):
    input_model = MachiningTimeFromImageInput
    output_model = MachiningTimeFromImageOutput

    @property
    def name(self) -> str:
        return "estimate_machining_time_from_image"

    def render_prompt(self, data: MachiningTimeFromImageInput) -> str:
        lines = [
            "Você é um engenheiro de usinagem CNC experiente.",
            "Analise o desenho técnico anexado e estime o tempo de produção da peça.",
            f"Máquina selecionada: {data.machine_type}.",
        ]
        if data.operation_description:
            lines.append(f"Concentre a análise nesta operação: {data.operation_description}.")
        lines += [
            "Identifique material (assuma Aço 1045 se não estiver indicado), dimensões gerais,",
            "geometrias principais, operações necessárias e complexidade.",
            "Informe em minutos o tempo de setup, o tempo de usinagem e o tempo de programação CNC.",
            "O tempo total é a soma dos três. Explique a estimativa nas observações.",
        ]
        return "\n".join(lines)

    def media(self, data: MachiningTimeFromImageInput) -> list[str]:
        return [data.photo_data_uri]
