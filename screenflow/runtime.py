"""Model providers and the runtime that chooses between them."""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import ModelRuntimeConfig, ModelRuntimeStrategy
from .errors import (
    ConfigurationError,
    EmptyResponseError,
    HTTPStatusError,
    InvalidResponseError,
    ModelUnavailableError,
)
from .prompts import ModelRequest

logger = logging.getLogger(__name__)


class ModelProviderType(str, Enum):
    ON_DEVICE = "on_device"
    SELF_HOSTED = "self_hosted_open_model"


@dataclass(slots=True)
class ModelOutput:
    provider: ModelProviderType
    model: str
    raw_response_text: str


class ModelProvider(ABC):
    provider_type: ModelProviderType
    model: str

    @abstractmethod
    def run(self, request: ModelRequest) -> str:
        """Return the raw response text for one request."""


class OnDeviceModelProvider(ModelProvider):
    """Adapter for a local generation backend, if one is installed.

    Without a backend every call reports ``ModelUnavailableError`` so the
    runtime can fall through to the self-hosted provider.
    """

    provider_type = ModelProviderType.ON_DEVICE

    def __init__(self, model: str, backend: Optional[Callable[[ModelRequest], str]] = None) -> None:
        self.model = model
        self._backend = backend

    def run(self, request: ModelRequest) -> str:
        if self._backend is None:
            raise ModelUnavailableError("no on-device model backend is installed")
        return self._backend(request)


class SelfHostedModelProvider(ModelProvider):
    """Ollama-compatible chat endpoint reached over HTTP."""

    provider_type = ModelProviderType.SELF_HOSTED

    def __init__(self, model: str, endpoint: str, *, timeout: float = 60.0) -> None:
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    def run(self, request: ModelRequest) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "stream": False,
            "format": "json",
            "options": {"temperature": 0},
        }
        req = urllib.request.Request(
            f"{self.endpoint}/api/chat",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                status = getattr(resp, "status", 200)
                body = resp.read()
        except urllib.error.HTTPError as exc:
            raise HTTPStatusError(exc.code) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise InvalidResponseError(f"model endpoint unreachable: {exc}") from exc
        except http.client.HTTPException as exc:
            raise InvalidResponseError(f"model endpoint sent a broken response: {exc!r}") from exc

        if not 200 <= status < 300:
            raise HTTPStatusError(status)
        try:
            content = json.loads(body)["message"]["content"]
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidResponseError(f"unexpected chat response: {exc}") from exc
        if not isinstance(content, str):
            raise InvalidResponseError("chat response content is not text")
        content = content.strip()
        if not content:
            raise EmptyResponseError("model returned an empty message")
        return content


class ModelRuntime:
    """Routes requests to the on-device or self-hosted provider per strategy."""

    def __init__(
        self,
        config: ModelRuntimeConfig | None = None,
        *,
        on_device: ModelProvider | None = None,
        self_hosted: ModelProvider | None = None,
    ) -> None:
        self.config = config or ModelRuntimeConfig.from_env()
        self.on_device = on_device or OnDeviceModelProvider(self.config.on_device_model)
        self._self_hosted = self_hosted

    def run(self, request: ModelRequest) -> ModelOutput:
        if self.config.strategy is ModelRuntimeStrategy.SELF_HOSTED_ONLY:
            return self._invoke(self.self_hosted_provider(), request)
        try:
            return self._invoke(self.on_device, request)
        except ModelUnavailableError as exc:
            logger.info("On-device model unavailable (%s); using self-hosted provider", exc)
        return self._invoke(self.self_hosted_provider(), request)

    def self_hosted_provider(self) -> ModelProvider:
        if self._self_hosted is None:
            if not self.config.self_hosted_endpoint:
                raise ConfigurationError(
                    "self-hosted model endpoint is not configured. Set SCREENFLOW_LOCAL_MODEL_ENDPOINT"
                )
            self._self_hosted = SelfHostedModelProvider(
                self.config.self_hosted_model,
                self.config.self_hosted_endpoint,
                timeout=self.config.timeout,
            )
        return self._self_hosted

    @staticmethod
    def _invoke(provider: ModelProvider, request: ModelRequest) -> ModelOutput:
        raw = provider.run(request)
        logger.debug("Provider %s/%s returned %d chars", provider.provider_type.value, provider.model, len(raw))
        return ModelOutput(provider=provider.provider_type, model=provider.model, raw_response_text=raw)
