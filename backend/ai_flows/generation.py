"""
AI Generation Flows - schema in, template, schema out

A flow validates its input against a pydantic model, renders a fixed jinja2
prompt template with the input fields, asks the hosted model for a JSON
object matching the output model, and returns the validated output.

Templates are plain strings with named placeholders; a flow is a pure
function of (input schema, template, output schema) plus the model call.
"""

import json
import logging
import os
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from jinja2 import Environment, StrictUndefined
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from billing.errors import GenerationFailed

logger = logging.getLogger(__name__)

AI_MODEL = os.environ.get("AI_MODEL", "gpt-4o")
AI_TEMPERATURE = float(os.environ.get("AI_TEMPERATURE", "0.7"))

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)

_template_env = Environment(undefined=StrictUndefined, autoescape=False)


class GenerationRequest(BaseModel):
    """Request sent to the text-generation service"""
    model: str
    prompt: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output_schema: Dict[str, Any]


class LlmClient:
    """
    Thin async wrapper over OpenAI chat completions in JSON mode.

    Returns the raw JSON text, or None when the model produced no output.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate(self, request: GenerationRequest) -> Optional[str]:
        system_message = (
            "Respond ONLY with a valid JSON object (no markdown, no explanation) "
            "matching this JSON schema:\n"
            + json.dumps(request.output_schema, ensure_ascii=False)
        )
        response = await self.client.chat.completions.create(
            model=request.model,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": request.prompt},
            ],
            response_format={"type": "json_object"},
            temperature=AI_TEMPERATURE,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content


class GenerationFlow(Generic[InputT, OutputT]):
    """A prompt-templated call to the hosted model with typed input and output."""

    def __init__(
        self,
        name: str,
        template: str,
        input_model: Type[InputT],
        output_model: Type[OutputT],
        client: Optional[LlmClient] = None,
        model: Optional[str] = None,
    ):
        self.name = name
        self.template = template
        self.input_model = input_model
        self.output_model = output_model
        self.client = client or LlmClient()
        self.model = model or AI_MODEL
        self._compiled = _template_env.from_string(template)

    def render_prompt(self, data: InputT) -> str:
        return self._compiled.render(**data.model_dump(mode="json"))

    async def run(self, payload) -> OutputT:
        """
        Run the flow.

        Args:
            payload: Input model instance or a dict matching it

        Raises:
            pydantic.ValidationError: payload does not match the input schema
            GenerationFailed: no output, or output not matching the output schema
        """
        data = payload if isinstance(payload, self.input_model) else self.input_model.model_validate(payload)

        request = GenerationRequest(
            model=self.model,
            prompt=self.render_prompt(data),
            input=data.model_dump(mode="json"),
            output_schema=self.output_model.model_json_schema(),
        )
        raw = await self.client.generate(request)

        if not raw:
            logger.error(f"{self.name}: model returned no output")
            raise GenerationFailed(f"{self.name}: AI did not return a valid result.")

        try:
            return self.output_model.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"{self.name}: output failed schema validation: {e.error_count()} error(s)")
            raise GenerationFailed(f"{self.name}: AI output did not match the expected format.") from e
