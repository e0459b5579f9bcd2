"""Completion backends: the contract plus a vendor-neutral scripted backend."""
from .base import BaseCompletionProvider, CompletionProvider, CompletionResponse, ProviderError
from .scripted import ScriptedProvider

__all__ = [
    "BaseCompletionProvider", "CompletionProvider", "CompletionResponse",
    "ProviderError", "ScriptedProvider",
]
