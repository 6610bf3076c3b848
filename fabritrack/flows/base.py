import re
from abc import ABC, abstractmethod

from pydantic import BaseModel

_DATA_URI = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,[A-Za-z0-9+/=\s]+$")


def check_data_uri(value: str) -> str:
    """Accept only 'data:<mimetype>;base64,<encoded_data>' strings."""
    if not _DATA_URI.match(value or ""):
        raise ValueError("expected a base64 data URI: 'data:<mimetype>;base64,<encoded_data>'")
    return value


class PromptFlow(ABC):
    input_model: type[BaseModel]
    output_model: type[BaseModel]

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def render_prompt(self, data: BaseModel) -> str:
        ...

    def media(self, data: BaseModel) -> list[str]:
        return []
