from fabritrack.flows.base import PromptFlow


class FlowNotFoundError(Exception):
    def __init__(self, flow_name: str):
        super().__init__(f"No prompt flow registered under name: {flow_name!r}")
        self.flow_name = flow_name


class FlowRegistry:
    """Prompt flows addressable by their public name."""

    def __init__(self):
        self._flows: dict[str, PromptFlow] = {}

    def register(self, flow_cls: type[PromptFlow]) -> PromptFlow:
        flow = flow_cls()
        if flow.name in self._flows:
            raise ValueError(f"prompt flow {flow.name!r} is already registered")
        self._flows[flow.name] = flow
        return flow

    def resolve(self, flow_name: str) -> PromptFlow:
        try:
            return self._flows[flow_name]
        except KeyError:
            raise FlowNotFoundError(flow_name) from None

    def describe(self, flow_name: str) -> dict:
        """JSON schemas a caller needs to build a request and read the reply."""
        flow = self.resolve(flow_name)
        return {
            "name": flow.name,
            "input_schema": flow.input_model.model_json_schema(),
            "output_schema": flow.output_model.model_json_schema(),
        }

    def keys(self) -> list[str]:
        return sorted(self._flows)
