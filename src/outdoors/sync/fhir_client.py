"""HTTP transport for FHIR batch Bundles.

One POST per upload attempt to ``{base_url}/fhir/r5/``.  The response must be
a ``batch-response`` Bundle; anything else fails the whole attempt.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.outdoors.errors import NetworkFailure, ServerRejected

logger = logging.getLogger("daylight.outdoors.sync.fhir_client")

# Longest response body kept on a ServerRejected error
_BODY_PREVIEW_CHARS = 500


class FHIRClient:
    """Post batch Bundles to a FHIR R5 exchange.

    Args:
        base_url:        Exchange base URL, without the ``/fhir/r5/`` suffix.
        timeout_seconds: Per-request timeout.
        http_client:     Optional pre-configured httpx client (for testing).
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = f"{base_url.rstrip('/')}/fhir/r5/"
        self._timeout = timeout_seconds
        self._http_client = http_client

    def _build_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def post_bundle(self, bundle: dict[str, Any], access_token: str) -> dict[str, Any]:
        """POST ``bundle`` and return the parsed batch-response Bundle.

        Raises:
            NetworkFailure: On transport errors or timeouts.
            ServerRejected: On a non-2xx status or a body that is not a
                            batch-response Bundle.
        """
        headers = self._build_headers(access_token)
        logger.info(
            "Posting batch of %d entries to %s", len(bundle.get("entry", [])), self.endpoint
        )

        try:
            if self._http_client:
                response = await self._http_client.post(
                    self.endpoint, json=bundle, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.endpoint, json=bundle, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkFailure(f"Upload failed: {exc.__class__.__name__}: {exc}") from exc

        if not 200 <= response.status_code <= 299:
            body = response.text[:_BODY_PREVIEW_CHARS]
            logger.warning("FHIR server returned %d: %s", response.status_code, body)
            raise ServerRejected(
                f"Upload failed, status code: {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        try:
            parsed = response.json()
        except ValueError as exc:
            raise ServerRejected(
                "Failed to parse response", status_code=response.status_code
            ) from exc

        if (
            not isinstance(parsed, dict)
            or parsed.get("resourceType") != "Bundle"
            or parsed.get("type") != "batch-response"
        ):
            raise ServerRejected(
                "Response is not a batch-response Bundle", status_code=response.status_code
            )
        return parsed
