"""Abstract base class for text-understanding (model) services.

Enables switching between inference providers (OpenAI, Ollama) while the
extractors keep a single `infer(prompt, schema)` contract.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from services.shared.config import Settings

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """Model service call failed in a way a retry will not fix."""


class TransientServiceError(InferenceError):
    """Model service timed out, throttled, or returned a server error.

    Callers retry these with exponential backoff before degrading.
    """


class InferenceResult(BaseModel):
    """Parsed model output.

    Attributes:
        parsed: JSON object returned by the model
        confidence: Self-reported (or estimated) confidence (0-1)
        provider: Name of provider that served the call
    """

    parsed: dict[str, Any]
    confidence: float = Field(..., ge=0, le=1)
    provider: str


class InferenceProvider(ABC):
    """Abstract base class for text-understanding providers.

    Example implementations:
    - OpenAIInferenceProvider: Uses OpenAI API (cloud-based)
    - OllamaInferenceProvider: Uses a self-hosted Ollama server
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def infer(self, prompt: str, schema: dict[str, Any]) -> InferenceResult:
        """Run a structured extraction prompt.

        Args:
            prompt: Full instruction prompt including the document text
            schema: JSON schema of the expected object

        Returns:
            InferenceResult with the parsed object and a confidence

        Raises:
            TransientServiceError: On timeout, throttling or server errors
            InferenceError: On any other failure (bad response, missing credentials)
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'ollama')
        """
        pass

    def _build_result(self, parsed: dict[str, Any], schema: dict[str, Any]) -> InferenceResult:
        """Split the self-reported confidence off the parsed object."""
        reported = parsed.pop("confidence", None)
        if isinstance(reported, int | float) and not isinstance(reported, bool):
            confidence = min(max(float(reported), 0.0), 1.0)
        else:
            confidence = estimate_confidence(parsed, schema)
        return InferenceResult(parsed=parsed, confidence=confidence, provider=self.provider_name)


def estimate_confidence(parsed: dict[str, Any], schema: dict[str, Any]) -> float:
    """Estimate confidence as the share of schema properties the model populated.

    Args:
        parsed: Parsed model output
        schema: JSON schema with a 'properties' mapping

    Returns:
        Fraction of declared properties with a non-empty value
    """
    properties = [name for name in schema.get("properties", {}) if name != "confidence"]
    if not properties:
        return 0.0

    populated = 0
    for name in properties:
        value = parsed.get(name)
        if value is None:
            continue
        if isinstance(value, str | list | dict) and len(value) == 0:
            continue
        populated += 1
    return populated / len(properties)


def parse_json_response(response_text: str) -> dict[str, Any]:
    """Extract and parse a JSON object from an LLM response.

    Handles common LLM quirks like markdown code blocks.

    Args:
        response_text: Raw LLM response

    Returns:
        Parsed JSON dict

    Raises:
        json.JSONDecodeError: If no valid JSON found
        InferenceError: If the JSON is not an object
    """
    json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
    if json_match:
        result: Any = json.loads(json_match.group(1).strip())
    else:
        json_match = re.search(r"\{[\s\S]*\}", response_text)
        if json_match:
            result = json.loads(json_match.group(0))
        else:
            result = json.loads(response_text.strip())

    if not isinstance(result, dict):
        raise InferenceError(f"Expected a JSON object, got {type(result).__name__}")
    return result
