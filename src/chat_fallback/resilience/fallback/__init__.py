"""Fallback stages for graceful degradation.

Each stage produces a ``FallbackResult`` or reports that it could not:
the semantic cache, the backup model chain and the rule-based responder,
which always answers.
"""

from .cache import CacheFallbackResolver
from .chain import (
    BackupProviderDescriptor,
    BackupProviderRegistry,
    ModelFallbackChain,
    detect_language,
)
from .rules import Intent, RuleBasedResponder, classify_intent

__all__ = [
    "BackupProviderDescriptor",
    "BackupProviderRegistry",
    "CacheFallbackResolver",
    "Intent",
    "ModelFallbackChain",
    "RuleBasedResponder",
    "classify_intent",
    "detect_language",
]
