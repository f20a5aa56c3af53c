"""Generative-AI collaborators: the Ollama client and the design assistant."""

from protosite.ai.designer import DesignAssistant, DesignCapability, detect_image_type
from protosite.ai.ollama_client import OllamaClient, OllamaResponse

__all__ = [
    "DesignAssistant",
    "DesignCapability",
    "OllamaClient",
    "OllamaResponse",
    "detect_image_type",
]
