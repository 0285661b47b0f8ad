"""OpenAI-based text-understanding provider.

Uses OpenAI function calling to obtain structured JSON for a declared schema.
Retries are owned by the caller (the extraction model phase); this module only
classifies failures into transient and permanent ones.
"""

import json
import os
from typing import Any

import openai
from openai import OpenAI

from services.inference.base import (
    InferenceError,
    InferenceProvider,
    InferenceResult,
    TransientServiceError,
)
from services.shared.config import Settings

SYSTEM_PROMPT = (
    "You are an expert assistant for government procurement solicitations. "
    "Extract structured data accurately and never invent values."
)

_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIInferenceProvider(InferenceProvider):
    """OpenAI-based provider using GPT-4o-mini by default.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def infer(self, prompt: str, schema: dict[str, Any]) -> InferenceResult:
        """Run a function-calling completion and parse its arguments.

        Args:
            prompt: Extraction prompt
            schema: JSON schema for the function parameters

        Returns:
            InferenceResult with provider='openai'
        """
        if not self.is_available():
            raise InferenceError("OPENAI_API_KEY environment variable not set")

        api_key = os.getenv("OPENAI_API_KEY")
        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(
                api_key=api_key,
                timeout=self.settings.inference_timeout_seconds,
                max_retries=0,
            )

        try:
            response = self._client.chat.completions.create(  # type: ignore[call-overload]
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                functions=[self._function_definition(schema)],
                function_call={"name": "extract_solicitation_data"},
                temperature=0,  # Deterministic output
            )
        except _TRANSIENT_ERRORS as e:
            raise TransientServiceError(f"OpenAI call failed: {e}") from e
        except openai.OpenAIError as e:
            raise InferenceError(f"OpenAI call failed: {e}") from e

        if not getattr(response, "choices", None):
            raise InferenceError("OpenAI response contained no choices")

        message = response.choices[0].message
        if message.function_call is None:
            raise InferenceError("No function call in API response")

        try:
            parsed = json.loads(message.function_call.arguments)
        except json.JSONDecodeError as e:
            raise InferenceError(f"JSON parsing failed: {e}") from e
        if not isinstance(parsed, dict):
            raise InferenceError("Function call arguments are not a JSON object")

        return self._build_result(parsed, schema)

    def _function_definition(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Wrap the target schema as an OpenAI function definition.

        A 'confidence' property is added so the model can self-report.
        """
        parameters = {
            "type": "object",
            "properties": {
                **schema.get("properties", {}),
                "confidence": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
            },
        }
        return {
            "name": "extract_solicitation_data",
            "description": "Extract structured data from a procurement solicitation",
            "parameters": parameters,
        }
