"""OCR block normalization and the OpenVINO-backed recognition engine."""

from __future__ import annotations

import io
import logging
import os
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import EngineRequestFailedError, InvalidImageDataError
from .models import ScreenSource
from .storage import write_bytes_atomic
from .utils import canonical_json, collapse_whitespace, round_half_away

try:  # pragma: no cover - optional dependency
    import openvino as ov  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    ov = None  # type: ignore

logger = logging.getLogger(__name__)

OCR_SCHEMA_VERSION = "OCRBlockSpec.v1"

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ" " ,.:-_/\\()[]{}@#%&+*=;!?\"'"
_MODEL_NAME = "text-recognition-0014"
_MODEL_BASE_URL = (
    "https://storage.openvinotoolkit.org/repositories/open_model_zoo/2023.2/models_bin/1/"
    f"{_MODEL_NAME}/FP16/{_MODEL_NAME}"
)


@dataclass(slots=True, frozen=True)
class BoundingBox:
    """Normalized, top-left origin box."""

    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(slots=True, frozen=True)
class PageSize:
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(slots=True, frozen=True)
class OCRCandidate:
    text: str
    bbox: BoundingBox
    confidence: float


@dataclass(slots=True, frozen=True)
class OCRTextBlock:
    text: str
    bbox: BoundingBox
    page_size: PageSize
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "bbox": self.bbox.to_dict(),
            "pageSize": self.page_size.to_dict(),
            "confidence": self.confidence,
        }


@dataclass(slots=True)
class OCRBlockSpec:
    source: str
    processing_version: str
    blocks: List[OCRTextBlock] = field(default_factory=list)
    language_hint: Optional[str] = None
    schema_version: str = OCR_SCHEMA_VERSION

    @property
    def lines(self) -> List[str]:
        return [block.text for block in self.blocks]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "schemaVersion": self.schema_version,
            "source": self.source,
            "processingVersion": self.processing_version,
            "blocks": [block.to_dict() for block in self.blocks],
        }
        if self.language_hint is not None:
            payload["languageHint"] = self.language_hint
        return payload

    def to_json(self) -> str:
        return canonical_json(self.to_dict())


def make_ocr_spec(
    candidates: Iterable[OCRCandidate],
    *,
    page_size: PageSize,
    source: ScreenSource,
    processing_version: str,
    language_hint: Optional[str] = None,
) -> OCRBlockSpec:
    """Canonicalize raw recognition candidates into reading order.

    The output depends only on the set of candidates, never on the order in
    which the engine reported them.
    """

    normalized = [
        OCRCandidate(
            text=collapse_whitespace(candidate.text),
            bbox=candidate.bbox,
            confidence=round_half_away(candidate.confidence, 4),
        )
        for candidate in candidates
    ]
    normalized = [candidate for candidate in normalized if candidate.text]
    normalized.sort(key=_reading_order)
    blocks = [
        OCRTextBlock(
            text=candidate.text,
            bbox=candidate.bbox,
            page_size=page_size,
            confidence=candidate.confidence,
        )
        for candidate in normalized
    ]
    return OCRBlockSpec(
        source=source.value,
        processing_version=processing_version,
        blocks=blocks,
        language_hint=language_hint,
    )


def _reading_order(candidate: OCRCandidate) -> Tuple[float, float, str, float, float, float]:
    # total order: identical text at the same origin still sorts by size, then confidence
    box = candidate.bbox
    return (box.y, box.x, candidate.text, box.width, box.height, candidate.confidence)


class OCREngine(ABC):
    """Boundary to a text-recognition engine."""

    engine_version: str = "ocr-engine-v1"

    @abstractmethod
    def extract(self, image_bytes: bytes, source: ScreenSource, processing_version: str) -> OCRBlockSpec:
        """Recognize text in the image and return a canonical OCR spec."""


@dataclass(slots=True)
class OpenVinoOCRConfig:
    """Where the recognition network lives and how to decode its output."""

    recognition_model: Path
    device: str = "CPU"
    alphabet: str = _ALPHABET
    blank_id: int = 0
    model_url: str = _MODEL_BASE_URL + ".xml"
    weights_url: str = _MODEL_BASE_URL + ".bin"

    @property
    def weights_path(self) -> Path:
        return self.recognition_model.with_suffix(".bin")

    @classmethod
    def from_env(cls) -> "OpenVinoOCRConfig":
        model_path = os.getenv("SCREENFLOW_OCR_RECOGNITION_MODEL")
        if model_path:
            recognition_model = Path(model_path).expanduser()
        else:
            model_dir = Path(os.getenv("SCREENFLOW_MODEL_DIR", "models")).expanduser()
            recognition_model = model_dir / "ocr" / f"{_MODEL_NAME}.xml"
        return cls(
            recognition_model=recognition_model,
            device=os.getenv("SCREENFLOW_OCR_DEVICE", "CPU"),
            alphabet=os.getenv("SCREENFLOW_OCR_ALPHABET", _ALPHABET),
            blank_id=int(os.getenv("SCREENFLOW_OCR_BLANK_ID", "0")),
            model_url=os.getenv("SCREENFLOW_OCR_MODEL_XML_URL", _MODEL_BASE_URL + ".xml"),
            weights_url=os.getenv("SCREENFLOW_OCR_MODEL_BIN_URL", _MODEL_BASE_URL + ".bin"),
        )


def ensure_model_files(config: OpenVinoOCRConfig) -> None:
    """Fetch the IR pair next to ``recognition_model`` when either half is absent."""

    pending = [
        (url, path)
        for url, path in ((config.model_url, config.recognition_model), (config.weights_url, config.weights_path))
        if not path.exists()
    ]
    for url, path in pending:
        logger.info("Downloading OCR model file %s", url)
        try:
            with urllib.request.urlopen(url) as response:
                status = getattr(response, "status", 200)
                if status != 200:
                    raise EngineRequestFailedError(f"model download returned HTTP {status}: {url}")
                data = response.read()
        except OSError as exc:
            raise EngineRequestFailedError(f"model download failed: {url}: {exc}") from exc
        if not data:
            raise EngineRequestFailedError(f"model download was empty: {url}")
        if path.suffix == ".xml" and not data.lstrip()[:64].startswith(b"<?xml"):
            raise EngineRequestFailedError(f"model download is not OpenVINO IR: {url}")
        write_bytes_atomic(path, data)


class OpenVINOTextRecognizer:
    """Single-line CTC text recognition on a compiled OpenVINO network."""

    def __init__(self, config: OpenVinoOCRConfig) -> None:
        if ov is None:
            raise EngineRequestFailedError("OpenVINO runtime is not installed")
        ensure_model_files(config)
        self._alphabet = config.alphabet
        self._blank_id = config.blank_id
        core = ov.Core()
        self._compiled = core.compile_model(core.read_model(str(config.recognition_model)), config.device)
        self._input = self._compiled.input(0)
        self._output = self._compiled.output(0)
        shape = list(self._input.shape)  # type: ignore[call-arg]
        if len(shape) != 4:
            raise EngineRequestFailedError(f"unsupported recognition input shape {shape}")
        _, self._channels, self._height, self._width = (int(dim) for dim in shape)

    def run(self, strip: Image.Image) -> Tuple[str, float]:
        """Return the decoded line and its mean per-character probability."""

        outputs = self._compiled({self._input: self._tensor(strip)})
        return self._decode(np.asarray(outputs[self._output]))

    def _tensor(self, strip: Image.Image) -> np.ndarray:
        # scale to the network height, keep aspect ratio, pad right with white
        mode = "L" if self._channels == 1 else "RGB"
        strip = strip.convert(mode)
        scale = self._height / max(strip.height, 1)
        width = min(self._width, max(1, int(round(strip.width * scale))))
        canvas = Image.new(mode, (self._width, self._height), 255 if mode == "L" else (255, 255, 255))
        canvas.paste(strip.resize((width, self._height)), (0, 0))
        pixels = np.asarray(canvas, dtype=np.float32) / 255.0
        if self._channels == 1:
            pixels = pixels[np.newaxis, :, :]
        else:
            pixels = pixels.transpose(2, 0, 1)
        return pixels[np.newaxis, ...]

    def _decode(self, logits: np.ndarray) -> Tuple[str, float]:
        scores = logits.reshape(-1, logits.shape[-1]) if logits.ndim in (2, 3) else None
        if scores is None:
            raise EngineRequestFailedError(f"unsupported logits shape {logits.shape}")
        exp = np.exp(scores - scores.max(axis=-1, keepdims=True))
        probabilities = exp / exp.sum(axis=-1, keepdims=True)
        best = probabilities.argmax(axis=-1)
        text: List[str] = []
        kept: List[float] = []
        previous = self._blank_id
        for step, token in enumerate(int(value) for value in best):
            if token != self._blank_id and token != previous and token < len(self._alphabet):
                text.append(self._alphabet[token])
                kept.append(float(probabilities[step, token]))
            previous = token
        return "".join(text).strip(), float(np.mean(kept)) if kept else 0.0


def decode_image(image_bytes: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InvalidImageDataError(f"cannot decode image: {exc}") from exc
    return image


def segment_lines(
    gray: np.ndarray,
    *,
    threshold: int = 128,
    min_height: int = 4,
    margin: int = 2,
) -> List[Tuple[int, int, int, int]]:
    """Split a grayscale page into (top, bottom, left, right) text strips.

    Rows containing ink are grouped into contiguous runs; each run is
    trimmed horizontally to its inked columns.
    """

    if gray.size == 0:
        return []
    ink = gray < threshold
    if ink.mean() > 0.5:
        # light text on a dark background
        ink = ~ink
    rows = ink.any(axis=1).astype(np.int8)
    edges = np.diff(np.concatenate(([0], rows, [0])))
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1)
    height, width = gray.shape
    strips: List[Tuple[int, int, int, int]] = []
    for start, stop in zip(starts, stops):
        if stop - start < min_height:
            continue
        columns = np.flatnonzero(ink[start:stop].any(axis=0))
        top = max(int(start) - margin, 0)
        bottom = min(int(stop) + margin, height)
        left = max(int(columns[0]) - margin, 0)
        right = min(int(columns[-1]) + 1 + margin, width)
        strips.append((top, bottom, left, right))
    return strips


class OpenVINOOCREngine(OCREngine):
    """Recognize page text line by line with an OpenVINO recognizer."""

    engine_version = "openvino-ocr-v1"

    def __init__(
        self,
        config: OpenVinoOCRConfig | None = None,
        *,
        language_hint: Optional[str] = "en-US",
        engine_version: Optional[str] = None,
    ) -> None:
        self.config = config or OpenVinoOCRConfig.from_env()
        self.language_hint = language_hint
        if engine_version:
            self.engine_version = engine_version
        self._recognizer: Optional[OpenVINOTextRecognizer] = None

    def _get_recognizer(self) -> OpenVINOTextRecognizer:
        if self._recognizer is None:
            try:
                self._recognizer = OpenVINOTextRecognizer(self.config)
            except EngineRequestFailedError as exc:
                logger.warning("OpenVINO OCR unavailable: %s", exc)
                raise
            except RuntimeError as exc:
                logger.warning("OpenVINO could not load %s: %s", self.config.recognition_model, exc)
                raise EngineRequestFailedError(str(exc)) from exc
            logger.info("Loaded OpenVINO OCR model from %s", self.config.recognition_model)
        return self._recognizer

    def extract(self, image_bytes: bytes, source: ScreenSource, processing_version: str) -> OCRBlockSpec:
        image = decode_image(image_bytes)
        recognizer = self._get_recognizer()
        gray = np.asarray(image.convert("L"), dtype=np.uint8)
        height, width = gray.shape
        candidates: List[OCRCandidate] = []
        for top, bottom, left, right in segment_lines(gray):
            strip = image.crop((left, top, right, bottom))
            try:
                text, confidence = recognizer.run(strip)
            except RuntimeError as exc:  # pragma: no cover - needs a compiled model
                raise EngineRequestFailedError(f"OpenVINO OCR inference failed: {exc}") from exc
            candidates.append(
                OCRCandidate(
                    text=text,
                    bbox=BoundingBox(
                        x=round_half_away(left / width, 6),
                        y=round_half_away(top / height, 6),
                        width=round_half_away((right - left) / width, 6),
                        height=round_half_away((bottom - top) / height, 6),
                    ),
                    confidence=confidence,
                )
            )
        logger.debug("Recognized %d text strips", len(candidates))
        return make_ocr_spec(
            candidates,
            page_size=PageSize(width=width, height=height),
            source=source,
            processing_version=processing_version,
            language_hint=self.language_hint,
        )
