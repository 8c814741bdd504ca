"""Generation gateway: the engine's view of external AI providers."""

from reelforge.gateway.base import (
    ArtifactRef,
    GenerationContext,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)
from reelforge.gateway.factory import build_gateway
from reelforge.gateway.http import HttpGateway
from reelforge.gateway.mock import MockGateway

__all__ = [
    "ArtifactRef",
    "GenerationContext",
    "GenerationFailure",
    "GenerationGateway",
    "GenerationResult",
    "HttpGateway",
    "MockGateway",
    "build_gateway",
]
