"""Deterministic mock gateway for local development and tests."""

import hashlib
import time

from reelforge.gateway.base import (
    ArtifactRef,
    GenerationContext,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)
from reelforge.workflow.models import GenerationKind


class MockGateway(GenerationGateway):
    """
    Produces placeholder URLs and canned text derived from the request.

    Identical contexts give identical outputs, which keeps tests stable.
    """

    provider_name = "mock"

    def __init__(
        self,
        segment_count: int = 3,
        candidates_per_request: int = 1,
        latency_seconds: float = 0.0,
    ):
        """
        Args:
            segment_count: Segments produced by a project-level script request
            candidates_per_request: Media candidates returned per request
            latency_seconds: Artificial delay per call
        """
        self.segment_count = max(1, segment_count)
        self.candidates_per_request = max(1, candidates_per_request)
        self.latency_seconds = latency_seconds

    def _seed(self, context: GenerationContext, salt: str = "") -> str:
        source = (
            f"{context.kind.value}:{context.project_id}:{context.segment_id}:"
            f"{context.script}:{context.video_prompt}:{salt}"
        )
        return hashlib.sha1(source.encode("utf-8")).hexdigest()[:16]

    def generate(self, context: GenerationContext) -> GenerationResult:
        if self.latency_seconds:
            time.sleep(self.latency_seconds)

        kind = context.kind
        if kind == GenerationKind.IDEA:
            topic = context.title or "an untold story"
            return GenerationResult(
                provider=self.provider_name,
                metadata={
                    "title": f"The Story of {topic}",
                    "description": f"A short video exploring {topic} in three beats.",
                },
            )

        if kind == GenerationKind.SCRIPT:
            return GenerationResult(provider=self.provider_name, metadata=self._script(context))

        if kind == GenerationKind.ASSEMBLY:
            if not context.clip_urls:
                raise GenerationFailure("no segment clips to assemble")
            seed = self._seed(context, "|".join(context.clip_urls))
            return GenerationResult(
                provider=self.provider_name,
                artifacts=(ArtifactRef(
                    url=f"https://mock.reelforge.local/final/{seed}.mp4",
                    metadata={"clips": len(context.clip_urls)},
                ),),
            )

        extension = {
            GenerationKind.IMAGE: "png",
            GenerationKind.VIDEO: "mp4",
            GenerationKind.AUDIO: "mp3",
            GenerationKind.FINAL: "mp4",
        }[kind]
        duration = None if kind == GenerationKind.IMAGE else 5.0
        prompt = context.video_prompt if kind in (GenerationKind.IMAGE, GenerationKind.VIDEO) else context.script

        artifacts = []
        for index in range(self.candidates_per_request):
            seed = self._seed(context, str(index))
            artifacts.append(ArtifactRef(
                url=f"https://mock.reelforge.local/{kind.value.lower()}/{seed}.{extension}",
                prompt=prompt or None,
                duration=duration,
                metadata={"seed": seed, "voice": context.voice} if kind == GenerationKind.AUDIO else {"seed": seed},
            ))
        return GenerationResult(provider=self.provider_name, artifacts=tuple(artifacts))

    def _script(self, context: GenerationContext) -> dict:
        subject = context.description or context.story or context.title or "the topic"
        if context.segment_id is not None:
            base = context.script or subject
            return {
                "script": f"{base} (revised)",
                "video_prompt": context.video_prompt or f"Cinematic shot illustrating {subject}",
            }

        count = context.segment_count or self.segment_count
        beats = ["Introduction to", "Exploring", "Key insight about", "Wrapping up"]
        segments = []
        for index in range(count):
            beat = beats[min(index, len(beats) - 1)] if index < count - 1 else beats[-1]
            segments.append({
                "script": f"{beat} {context.title or subject}.",
                "video_prompt": f"Scene {index + 1}: {beat.lower()} {subject}",
            })
        return {"segments": segments}
