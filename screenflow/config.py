"""Environment-driven configuration for the pipeline and model runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError
from .prompts import DEFAULT_PROMPT_VERSION


class ModelRuntimeStrategy(str, Enum):
    ON_DEVICE_PREFERRED = "on_device_preferred"
    SELF_HOSTED_ONLY = "self_hosted_only"


@dataclass(slots=True)
class ModelRuntimeConfig:
    """Which model providers to use and where the self-hosted one lives."""

    strategy: ModelRuntimeStrategy = ModelRuntimeStrategy.ON_DEVICE_PREFERRED
    on_device_model: str = "on-device"
    self_hosted_model: str = "llama3.1:8b-instruct-q4_K_M"
    self_hosted_endpoint: Optional[str] = None
    prompt_version: str = DEFAULT_PROMPT_VERSION
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "ModelRuntimeConfig":
        raw_strategy = os.getenv("SCREENFLOW_MODEL_STRATEGY", ModelRuntimeStrategy.ON_DEVICE_PREFERRED.value)
        try:
            strategy = ModelRuntimeStrategy(raw_strategy.strip().lower())
        except ValueError:
            raise ConfigurationError(f"unknown model strategy: {raw_strategy!r}") from None
        raw_timeout = os.getenv("SCREENFLOW_MODEL_TIMEOUT", "60")
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ConfigurationError(f"SCREENFLOW_MODEL_TIMEOUT is not a number: {raw_timeout!r}") from None
        return cls(
            strategy=strategy,
            on_device_model=os.getenv("SCREENFLOW_ON_DEVICE_MODEL", "on-device"),
            self_hosted_model=os.getenv("SCREENFLOW_LOCAL_MODEL_NAME", "llama3.1:8b-instruct-q4_K_M"),
            self_hosted_endpoint=os.getenv("SCREENFLOW_LOCAL_MODEL_ENDPOINT") or None,
            prompt_version=os.getenv("SCREENFLOW_PROMPT_VERSION", DEFAULT_PROMPT_VERSION),
            timeout=timeout,
        )


@dataclass(slots=True)
class ScreenFlowConfig:
    """Storage locations and version stamps for one pipeline instance."""

    home: Path
    db_path: Path
    shared_dir: Optional[Path] = None
    processing_version: str = "1.0.0"
    engine_version: str = "openvino-ocr-v1"
    language_hint: Optional[str] = "en-US"
    model: ModelRuntimeConfig = field(default_factory=ModelRuntimeConfig)

    @classmethod
    def from_env(cls) -> "ScreenFlowConfig":
        home = Path(os.getenv("SCREENFLOW_HOME", "~/.screenflow")).expanduser()
        db_path = os.getenv("SCREENFLOW_DB_PATH")
        shared_dir = os.getenv("SCREENFLOW_SHARED_DIR")
        return cls(
            home=home,
            db_path=Path(db_path).expanduser() if db_path else home / "screenflow.db",
            shared_dir=Path(shared_dir).expanduser() if shared_dir else None,
            processing_version=os.getenv("SCREENFLOW_PROCESSING_VERSION", "1.0.0"),
            engine_version=os.getenv("SCREENFLOW_OCR_ENGINE_VERSION", "openvino-ocr-v1"),
            language_hint=os.getenv("SCREENFLOW_LANGUAGE_HINT", "en-US") or None,
            model=ModelRuntimeConfig.from_env(),
        )
