"""Ollama-based text-understanding provider for self-hosted LLM inference.

Supports data sovereignty requirements by running entirely on-premises.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import json
import logging
from typing import Any

import httpx

from services.inference.base import (
    InferenceError,
    InferenceProvider,
    InferenceResult,
    TransientServiceError,
    parse_json_response,
)
from services.shared.config import Settings

logger = logging.getLogger(__name__)

# Status codes worth retrying
_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


class OllamaInferenceProvider(InferenceProvider):
    """Ollama-based provider for self-hosted LLM inference.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.inference_timeout_seconds)

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except Exception:
            return False

    def infer(self, prompt: str, schema: dict[str, Any]) -> InferenceResult:
        """Generate a JSON completion and parse it.

        Args:
            prompt: Extraction prompt
            schema: JSON schema of the expected object

        Returns:
            InferenceResult with provider='ollama'
        """
        response_text = self._generate(self._build_prompt(prompt, schema))

        try:
            parsed = parse_json_response(response_text)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from Ollama response: {e}")
            raise InferenceError(f"JSON parsing failed: {e}") from e

        return self._build_result(parsed, schema)

    def _generate(self, prompt: str) -> str:
        """Call the Ollama generate endpoint once.

        Raises:
            TransientServiceError: On timeouts, connection errors and retryable statuses
            InferenceError: On other HTTP errors
        """
        try:
            response = self._client.post(
                f"{self._base_url}/api/generate",
                json={
                    "model": self._model,
                    "prompt": prompt,
                    "stream": False,
                    "format": "json",
                    "options": {
                        "temperature": 0,  # Deterministic output
                        "num_predict": 2048,
                    },
                },
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransientServiceError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code in _RETRYABLE_STATUS:
                raise TransientServiceError(
                    f"Ollama returned {e.response.status_code}"
                ) from e
            raise InferenceError(f"Ollama request failed: {e}") from e
        except httpx.TransportError as e:
            raise TransientServiceError(f"Ollama unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise InferenceError(f"Ollama returned a non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise InferenceError("Ollama response body is not a JSON object")

        result = body.get("response") or ""
        if not isinstance(result, str):
            raise InferenceError("Ollama response field is not a string")
        return result

    def _build_prompt(self, prompt: str, schema: dict[str, Any]) -> str:
        """Append the output contract to the extraction prompt."""
        fields = ", ".join(schema.get("properties", {}).keys())
        return (
            f"{prompt}\n\n"
            "OUTPUT RULES:\n"
            f"- Return ONLY one JSON object with the keys: {fields}, confidence\n"
            "- Use null or [] for anything not present in the document\n"
            "- confidence is your own estimate (0-1) of extraction accuracy\n\n"
            "OUTPUT:"
        )
