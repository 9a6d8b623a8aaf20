# Author: Bradley R. Kinnard — pay per token, cache nothing

"""
Async bedrock-runtime client. One converse call, no retries here, the gateway owns those.
botocore exceptions bubble up untouched so the gateway can classify them.
"""

import logging
from typing import Any, Protocol

import aioboto3
from botocore.config import Config

from src.suggester.config import Settings, settings as default_settings
from src.suggester.core.models import InvocationRequest

log = logging.getLogger(__name__)


class Transport(Protocol):
    async def converse(self, request: InvocationRequest) -> dict[str, Any]: ...


class BedrockTransport:
    """Talks to bedrock. Session is created lazily and reused for the life of the container."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings
        self._session: aioboto3.Session | None = None

    def _get_session(self) -> aioboto3.Session:
        if self._session is None:
            kwargs: dict = {"region_name": self.settings.bedrock_region}
            # only pass creds when they're set, otherwise let the lambda role do its thing
            if self.settings.aws_access_key_id and self.settings.aws_secret_access_key:
                kwargs["aws_access_key_id"] = self.settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = self.settings.aws_secret_access_key
            self._session = aioboto3.Session(**kwargs)
        return self._session

    def _client_kwargs(self) -> dict:
        # botocore retries off, we do our own backoff
        kwargs: dict = {
            "config": Config(
                connect_timeout=5,
                read_timeout=self.settings.bedrock_read_timeout,
                retries={"max_attempts": 1, "mode": "standard"},
            )
        }
        if self.settings.bedrock_endpoint:
            kwargs["endpoint_url"] = self.settings.bedrock_endpoint
        return kwargs

    async def converse(self, request: InvocationRequest) -> dict[str, Any]:
        session = self._get_session()
        async with session.client("bedrock-runtime", **self._client_kwargs()) as client:
            log.debug(f"converse -> {request.model_id} maxTokens={request.max_tokens}")
            return await client.converse(**request.converse_kwargs())
