"""
Thin wrapper around the OpenAI chat completions API for the prompt flows.
"""

import json
import logging
from abc import ABC, abstractmethod

from openai import OpenAI

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Você é o assistente de engenharia de usinagem do FabriTrack. "
    "Responda sempre em português do Brasil e devolva somente um objeto JSON "
    "que siga exatamente o schema informado."
)


class PromptClient(ABC):
    @abstractmethod
    def generate(self, prompt: str, media: list[str], output_schema: dict) -> dict:
        """Send one prompt (plus optional data-URI images) and return the parsed JSON reply."""


class OpenAIPromptClient(PromptClient):
    def __init__(self, model: str = "gpt-4o-mini", api_key: str | None = None, client=None):
        self.model = model
        self._client = client or OpenAI(api_key=api_key)

    def _messages(self, prompt: str, media: list[str], output_schema: dict) -> list[dict]:
        text = f"{prompt}\n\nSchema JSON da resposta:\n{json.dumps(output_schema, ensure_ascii=False)}"
        content: list[dict] = [{"type": "text", "text": text}]
        content += [{"type": "image_url", "image_url": {"url": uri}} for uri in media]
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]

    def generate(self, prompt: str, media: list[str], output_schema: dict) -> dict:
        response = self._client.chat.completions.create(
            model=self.model,
            messages=self._messages(prompt, media, output_schema),
            response_format={"type": "json_object"},
            temperature=0.1,
        )
        reply = response.choices[0].message.content or ""
        logger.debug("model %s replied with %d characters", self.model, len(reply))
        return json.loads(reply)
