"""
HTTP client for the remote convert_message endpoint.

Fetches the complete current rule set published for this installation.
"""

import asyncio
import json
from typing import List, Optional

import aiohttp
import structlog
from pydantic import ValidationError

from ..config import RemoteSettings, get_settings
from ..models.remote import ConvertMessageResponse, RemoteConvertRule
from .configuration import TrackingIdProvider, get_tracking_id_provider
from .exceptions import SynchronizationError

logger = structlog.get_logger(__name__)

BODY_EXCERPT_LENGTH = 512


def _excerpt(body: str) -> str:
    if len(body) <= BODY_EXCERPT_LENGTH:
        return body
    return body[:BODY_EXCERPT_LENGTH] + "..."


class ConvertMessageClient:
    """
    Async client for `collectlogs/convert_message.json`.

    Every request carries the installation's tracking id in the X-SID
    header. The session is opened lazily and reused until stop().
    """

    def __init__(self, settings: RemoteSettings, tracking_ids: TrackingIdProvider) -> None:
        self.settings = settings
        self.tracking_ids = tracking_ids
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info("Convert message client initialized", url=settings.convert_message_url)

    async def start(self) -> None:
        if self.session is not None:
            return

        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        )

    async def stop(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    def get_headers(self) -> dict:
        return {
            "X-SID": self.tracking_ids.get_sid(),
            "Accept": "application/json",
            "User-Agent": "collectlogs/0.1.0",
        }

    async def fetch_rules(self) -> List[RemoteConvertRule]:
        """
        Fetch the remote rule set.

        Raises:
            SynchronizationError: on transport failure, an error status, a body
                that is not a JSON object with a `success` field, or a failure
                payload.
        """
        await self.start()
        if self.session is None:
            raise SynchronizationError("HTTP session is not available")

        url = self.settings.convert_message_url
        # The tracking id may be generated and stored on first use
        headers = await asyncio.to_thread(self.get_headers)
        try:
            async with self.session.get(
                url,
                headers=headers,
                ssl=self.settings.verify_ssl,
            ) as response:
                body = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SynchronizationError(
                f"Request to {url} failed: {str(e) or type(e).__name__}",
                details={"url": url},
            ) from e

        logger.debug("Convert message response received", status=status, size_bytes=len(body))

        if status >= 400:
            raise SynchronizationError(
                f"Unexpected HTTP status {status}: {_excerpt(body)}",
                details={"url": url, "status": status},
            )

        return self.parse_response(body)

    @staticmethod
    def parse_response(body: str) -> List[RemoteConvertRule]:
        """Validate a response body and return its rules."""
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise SynchronizationError(f"Failed to parse response: {_excerpt(body)}")

        if "success" not in payload:
            raise SynchronizationError(f"Invalid response payload: {_excerpt(body)}")

        try:
            response = ConvertMessageResponse.model_validate(payload)
        except ValidationError as e:
            raise SynchronizationError(
                f"Invalid response payload: {_excerpt(body)}",
                details={"errors": e.errors(include_url=False)},
            ) from e

        if not response.success:
            if response.error:
                raise SynchronizationError(response.error)
            raise SynchronizationError(f"Failure response: {_excerpt(body)}")

        if response.data is None:
            raise SynchronizationError(f"Invalid response payload: {_excerpt(body)}")

        return response.data


# Global client instance
_client: Optional[ConvertMessageClient] = None


def get_convert_message_client() -> ConvertMessageClient:
    """Get or create the global convert message client."""
    global _client

    if _client is None:
        settings = get_settings()
        _client = ConvertMessageClient(settings.remote, get_tracking_id_provider())

    return _client
