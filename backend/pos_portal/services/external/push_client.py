"""
Push API client: submits grouped receipt shifts to the external sales API.

One POST per batch, whatever the number of shifts. Credentials come from the
environment variables named in the retailer config and are sent as HTTP Basic auth.

Response handling:
- non-JSON body (any status)               -> TransportError
- JSON that does not match the response shape -> TransportError
- HTTP 2xx, or ResultCode "500"             -> SubmissionResult (reconcile per shift)
- anything else                            -> ExternalRejection
"""
import json
import logging
from typing import List, Mapping, Optional

import httpx
from pydantic import ValidationError as ShapeError

from ...errors import ConfigurationError, ExternalRejection, TransportError
from ...models import SubmissionResult
from ..retailers.registry import RetailerConfig, resolve_credentials
from ...core.structures import SubmissionUnit

logger = logging.getLogger(__name__)

# Overall ResultCode meaning "some shifts were processed despite the failure"
PARTIAL_FAILURE_RESULT_CODE = "500"


def build_payload(units: List[SubmissionUnit]) -> dict:
    """Request body for a batch of shifts."""
    return {"PushReceiptShifts": [unit.to_payload() for unit in units]}


class PushClient:
    """Client for the external receipt push API."""

    def __init__(
        self,
        api_url: Optional[str],
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Args:
            api_url: Push endpoint (EXTERNAL_API_URL); checked at submit time
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject httpx.MockTransport)
            environ: Where credential variables are looked up (defaults to os.environ)
        """
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport
        self._environ = environ

    async def submit(self, units: List[SubmissionUnit], retailer: RetailerConfig) -> SubmissionResult:
        """
        Send all units in a single request.

        Raises:
            ConfigurationError: endpoint or credentials missing (before any network call)
            TransportError: network failure, non-JSON or malformed response
            ExternalRejection: JSON response reporting overall failure
        """
        if not self.api_url:
            raise ConfigurationError("Missing required environment variable: EXTERNAL_API_URL")
        username, password = resolve_credentials(retailer, self._environ)

        payload = build_payload(units)
        logger.info(
            f"Calling external API for retailer: {retailer.key} with {len(units)} shifts."
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    auth=httpx.BasicAuth(username, password),
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException as e:
            logger.error(f"External API timed out for {retailer.key}: {e}")
            raise TransportError(f"External API for {retailer.key} timed out.")
        except httpx.HTTPError as e:
            logger.error(f"External API request failed for {retailer.key}: {e}")
            raise TransportError(f"External API for {retailer.key} could not be reached.")

        logger.info(f"External API response status for {retailer.key}: {response.status_code}")
        return self._decode(response, retailer)

    def _decode(self, response: httpx.Response, retailer: RetailerConfig) -> SubmissionResult:
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.error(
                f"External API Non-JSON Error for {retailer.key}: Status {response.status_code}, "
                f"Body: {response.text[:500]}..."
            )
            raise TransportError(
                f"External API for {retailer.key} returned a non-JSON error. Status: {response.status_code}.",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            logger.error(f"External API for {retailer.key} sent an undecodable JSON body: {response.text[:500]}")
            raise TransportError(
                f"External API for {retailer.key} returned an invalid JSON body. Status: {response.status_code}.",
                status_code=response.status_code,
            )

        if not isinstance(body, dict):
            raise TransportError(
                f"External API for {retailer.key} returned an unexpected response shape.",
                status_code=response.status_code,
            )

        try:
            result = SubmissionResult.model_validate(body)
        except ShapeError as e:
            logger.error(f"External API response for {retailer.key} failed shape validation: {e}")
            raise TransportError(
                f"External API for {retailer.key} returned an unexpected response shape.",
                status_code=response.status_code,
            )

        logger.debug(f"External API Response Received (JSON): {json.dumps(body, indent=2)}")

        if response.is_success or result.overall_result_code == PARTIAL_FAILURE_RESULT_CODE:
            return result

        message = result.overall_message or (
            f"API returned status {response.status_code} and ResultCode {result.overall_result_code}"
        )
        logger.error(
            f"External API Error for {retailer.key}. ResultCode: {result.overall_result_code}, "
            f"Message: {result.overall_message}"
        )
        raise ExternalRejection(message, status_code=response.status_code, result_code=result.overall_result_code)
