"""Generation provider implementations.

The SDK-backed providers are imported lazily by ``create_provider`` so the
mock provider works without API credentials.
"""

from medly.core.llm.providers.mock import MockProvider

__all__ = ["MockProvider"]
