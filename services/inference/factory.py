"""Factory for creating text-understanding providers based on configuration.

Implements Factory Pattern for provider selection with registry pattern for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from services.inference.base import InferenceProvider
from services.inference.ollama_provider import OllamaInferenceProvider
from services.inference.openai_provider import OpenAIInferenceProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available inference providers.

    Maintains a mapping of provider names to their implementation classes.
    Supports runtime registration of new providers.
    """

    _providers: dict[str, type[InferenceProvider]] = {
        "openai": OpenAIInferenceProvider,
        "ollama": OllamaInferenceProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[InferenceProvider]) -> None:
        """Register a new provider.

        Args:
            name: Provider identifier (must match Settings.inference_provider)
            provider_class: Provider class implementing InferenceProvider interface
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered inference provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[InferenceProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown inference provider: '{name}'. " f"Available providers: {available}"
            )
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        """List all registered provider names."""
        return list(cls._providers.keys())


def create_inference_provider(settings: Settings) -> InferenceProvider | None:
    """Create the configured inference provider.

    Returns None when the model phase is disabled, in which case extractors
    run the rule phase only.

    Args:
        settings: Application settings with inference_provider field

    Returns:
        Configured provider instance, or None

    Raises:
        ValueError: If configured provider is unknown
    """
    if not settings.inference_enabled:
        logger.info("Model-based extraction disabled; extractors will run rules only")
        return None

    provider_name = settings.inference_provider
    provider_class = ProviderRegistry.get_provider_class(provider_name)
    provider = provider_class(settings)

    if not provider.is_available():
        logger.warning(
            f"Inference provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys, server URL)."
        )

    logger.info(f"Created inference provider: {provider_name}")
    return provider
