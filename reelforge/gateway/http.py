"""HTTP-backed gateway that delegates generation to a remote service.

The service exposes one endpoint per kind:

    POST {base_url}/generate/{kind}
    → {"artifacts": [{"url", "prompt", "duration", "metadata"}], "metadata": {...}}

Timeouts, 429 and 5xx responses are reported as retryable failures;
any other non-2xx response is terminal.
"""

from typing import Any, Optional

import httpx

from reelforge.gateway.base import (
    ArtifactRef,
    GenerationContext,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class HttpGateway(GenerationGateway):
    provider_name = "http"

    def __init__(
        self,
        *,
        base_url: str,
        api_token: str = "",
        timeout_seconds: float = 60,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._api_token = api_token.strip()
        self._timeout_seconds = max(1.0, float(timeout_seconds))
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, headers=self._headers(), json=payload)
        with httpx.Client(timeout=self._timeout_seconds) as client:
            return client.post(url, headers=self._headers(), json=payload)

    def generate(self, context: GenerationContext) -> GenerationResult:
        if not self._base_url:
            raise GenerationFailure("gateway_base_url_missing")

        url = f"{self._base_url}/generate/{context.kind.value.lower()}"
        try:
            response = self._post(url, context.to_payload())
        except httpx.TimeoutException as exc:
            raise GenerationFailure(f"gateway_timeout {exc}", retryable=True) from exc
        except httpx.TransportError as exc:
            raise GenerationFailure(f"gateway_unreachable {exc}", retryable=True) from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 240:
                detail = detail[:240] + "..."
            raise GenerationFailure(
                f"gateway_failed status={response.status_code} detail={detail}",
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        try:
            body: dict[str, Any] = response.json()
        except ValueError as exc:
            raise GenerationFailure("gateway_invalid_json_response") from exc

        artifacts = []
        for item in body.get("artifacts") or []:
            url_value = str(item.get("url") or "").strip()
            if not url_value:
                raise GenerationFailure("gateway_artifact_missing_url")
            duration = item.get("duration")
            artifacts.append(ArtifactRef(
                url=url_value,
                prompt=item.get("prompt"),
                duration=float(duration) if isinstance(duration, (int, float)) else None,
                metadata=item.get("metadata") or {},
            ))

        return GenerationResult(
            provider=self.provider_name,
            artifacts=tuple(artifacts),
            metadata=body.get("metadata") or {},
        )
