"""Tests for the deterministic mock gateway and the gateway factory."""

import pytest

from reelforge.config import GatewayConfig
from reelforge.gateway import (
    GenerationContext,
    GenerationFailure,
    HttpGateway,
    MockGateway,
    build_gateway,
)
from reelforge.workflow import GenerationKind


def context(kind: GenerationKind, **kwargs) -> GenerationContext:
    kwargs.setdefault("project_id", "proj_1")
    return GenerationContext(kind=kind, **kwargs)


class TestMockGateway:
    """Tests for MockGateway."""

    def test_same_context_same_url(self):
        gateway = MockGateway()
        ctx = context(GenerationKind.IMAGE, segment_id="seg_1", video_prompt="a lighthouse")
        first = gateway.generate(ctx)
        second = gateway.generate(ctx)
        assert first.artifacts[0].url == second.artifacts[0].url
        assert first.artifacts[0].url.endswith(".png")
        assert first.artifacts[0].duration is None

    def test_candidates_per_request(self):
        gateway = MockGateway(candidates_per_request=3)
        result = gateway.generate(context(GenerationKind.VIDEO, segment_id="seg_1"))
        assert len(result.artifacts) == 3
        assert len({a.url for a in result.artifacts}) == 3
        assert all(a.duration == 5.0 for a in result.artifacts)

    def test_project_script_splits_into_segments(self):
        gateway = MockGateway(segment_count=2)
        result = gateway.generate(context(GenerationKind.SCRIPT, title="Volcanoes", segment_count=4))
        segments = result.metadata["segments"]
        assert len(segments) == 4
        assert all(s["script"] and s["video_prompt"] for s in segments)

    def test_segment_script_is_revised(self):
        gateway = MockGateway()
        result = gateway.generate(context(GenerationKind.SCRIPT, segment_id="seg_1", script="Lava flows."))
        assert result.metadata["script"] == "Lava flows. (revised)"

    def test_idea(self):
        result = MockGateway().generate(context(GenerationKind.IDEA, project_id="", title="tardigrades"))
        assert result.metadata["title"] == "The Story of tardigrades"

    def test_assembly_needs_clips(self):
        gateway = MockGateway()
        with pytest.raises(GenerationFailure) as exc:
            gateway.generate(context(GenerationKind.ASSEMBLY))
        assert exc.value.retryable is False

        result = gateway.generate(context(GenerationKind.ASSEMBLY, clip_urls=("https://x/1.mp4", "https://x/2.mp4")))
        assert result.artifacts[0].metadata["clips"] == 2


class TestGatewayFactory:
    """Tests for build_gateway."""

    def test_builds_mock(self):
        gateway = build_gateway(GatewayConfig(provider="mock", mock_segment_count=5))
        assert isinstance(gateway, MockGateway)
        assert gateway.segment_count == 5

    def test_builds_http(self):
        gateway = build_gateway(GatewayConfig(provider="http", base_url="https://gen.example.com"))
        assert isinstance(gateway, HttpGateway)

    def test_rejects_unknown_provider(self):
        with pytest.raises(ValueError):
            GatewayConfig(provider="carrier-pigeon")

    def test_build_rejects_unvalidated_provider(self):
        config = GatewayConfig.model_construct(provider="carrier-pigeon")
        with pytest.raises(ValueError, match="Unknown gateway provider"):
            build_gateway(config)
