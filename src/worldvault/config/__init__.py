"""Configuration module for worldvault.

Provides Pydantic Settings classes for storage, world resolution and the
summarizer adapter.
"""

from worldvault.config.settings import LLMSettings, WorldVaultSettings

__all__ = ["LLMSettings", "WorldVaultSettings"]
