from pydantic import BaseModel, Field

from fabritrack.flows.base import PromptFlow


class Geometry(BaseModel):
    shape: str
    external_diameter: str
    internal_diameter: str = ""
    length: str
    tolerances: str


class Machine(BaseModel):
    machine_type: str
    model: str
    axes: str
    speed_torque_limits: str


class Tooling(BaseModel):
    type: str
    diameter: str
    material: str
    tip_radius: str


class Spindle(BaseModel):
    max_rpm: str
    feed_per_minute: str


class OperationParams(BaseModel):
    machining_strategy: list[str] = Field(default_factory=list)
    threading_pitch: str | None = None
    thread_type: str | None = None
    threading_depth: str | None = None


class CncParametersInput(BaseModel):
    geometry: Geometry
    machine: Machine
    tools: Tooling
    spindle: Spindle
    operation_params: OperationParams = Field(default_factory=OperationParams)
    tool_change_time: str
    operations: list[str] = Field(min_length=1)
    material: str = Field(min_length=1)
    pieces_per_cycle: int = Field(gt=0)


class CncParametersOutput(BaseModel):
    machining_time_per_piece: str
    operation_sequence: str
    alerts_and_recommendations: str


class CncParametersFlow(PromptFlow):
    input_model = CncParametersInput
    output_model = CncParametersOutput

    @property
    def name(self) -> str:
        return "generate_cnc_parameters"

    def render_prompt(self, data: CncParametersInput) -> str:
        g, m, t, s = data.geometry, data.machine, data.tools, data.spindle
        lines = [
            "Você é uma IA especialista em processos de usinagem CNC.",
            "Estime o tempo de usinagem de uma única peça.",
            f"Material: {data.material}",
            f"Peças por ciclo: {data.pieces_per_cycle}",
            f"Geometria: {g.shape}, diâmetro externo {g.external_diameter}, "
            f"diâmetro interno {g.internal_diameter or '-'}, comprimento {g.length}, "
            f"tolerâncias {g.tolerances}",
            f"Máquina: {m.machine_type} {m.model}, {m.axes}, limites {m.speed_torque_limits}",
            f"Ferramenta: {t.type}, diâmetro {t.diameter}, material {t.material}, raio de ponta {t.tip_radius}",
            f"Spindle: RPM máximo {s.max_rpm}, avanço {s.feed_per_minute}",
            f"Troca de ferramenta: {data.tool_change_time} segundos",
            "Estratégia: " + ", ".join(data.operation_params.machining_strategy),
            "Operações:",
            *(f"- {op}" for op in data.operations),
        ]
        if "rosqueamento" in data.operations:
            p = data.operation_params
            lines.append(
                f"Rosqueamento: passo {p.threading_pitch}, tipo {p.thread_type}, "
                f"profundidade {p.threading_depth}"
            )
        lines += [
            "Informe o tempo por peça, a sequência de operações mais eficiente",
            "e alertas sobre desgaste, refrigeração e limitações da máquina.",
        ]
        return "\n".join(lines)
