"""Factory to resolve the active generation gateway."""

from reelforge.config import GatewayConfig
from reelforge.gateway.base import GenerationGateway
from reelforge.gateway.http import HttpGateway
from reelforge.gateway.mock import MockGateway


def build_gateway(config: GatewayConfig) -> GenerationGateway:
    provider = config.provider.strip().lower()
    if provider == "http":
        return HttpGateway(
            base_url=config.base_url,
            api_token=config.api_token,
            timeout_seconds=config.timeout_seconds,
        )
    if provider == "mock":
        return MockGateway(
            segment_count=config.mock_segment_count,
            candidates_per_request=config.mock_candidates,
        )
    raise ValueError(f"Unknown gateway provider: {config.provider}")
