"""LLM client and dialogue generation."""

from .client import VertexRestClient, VertexResponseError
from .dialogue import VertexDialogueService, build_contents

__all__ = ["VertexRestClient", "VertexResponseError", "VertexDialogueService", "build_contents"]
