"""Exception hierarchy shared across ScreenFlow stages."""

from __future__ import annotations

from typing import Any


class ScreenFlowError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(ScreenFlowError):
    """Raised when required configuration is missing or malformed."""


class EmptyInputError(ScreenFlowError, ValueError):
    """Raised when identity generation receives empty bytes or version."""


class InvalidImageDataError(ScreenFlowError):
    """Raised when image bytes cannot be decoded."""


class EngineRequestFailedError(ScreenFlowError):
    """Raised when the OCR engine cannot complete a recognition request."""


class SpecDecodeError(ScreenFlowError):
    """Raised when model output is not JSON shaped like a ScreenFlowSpec."""

    def __init__(self, field: str, value: Any, reason: str = "invalid value") -> None:
        super().__init__(f"{field}: {reason} ({value!r})")
        self.field = field
        self.value = value
        self.reason = reason


class SpecValidationError(ScreenFlowError):
    """Raised when a decoded spec breaks a canonicalization rule."""

    def __init__(self, field: str, value: Any, reason: str = "invalid value") -> None:
        super().__init__(f"{field}: {reason} ({value!r})")
        self.field = field
        self.value = value
        self.reason = reason


class ResolutionError(ScreenFlowError):
    """Raised if no interpretation tier produced a spec."""


class ModelRuntimeError(ScreenFlowError):
    """Base class for model provider failures."""


class ModelUnavailableError(ModelRuntimeError):
    """The provider cannot serve requests on this host."""


class HTTPStatusError(ModelRuntimeError):
    def __init__(self, code: int) -> None:
        super().__init__(f"model endpoint returned HTTP {code}")
        self.code = code


class EmptyResponseError(ModelRuntimeError):
    pass


class InvalidResponseError(ModelRuntimeError):
    pass


class ActionPackValidationError(ScreenFlowError):
    """Base class for action pack binding and precondition failures."""


class ScenarioMismatchError(ActionPackValidationError):
    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"pack expects scenario {expected!r}, spec is {actual!r}")
        self.expected = expected
        self.actual = actual


class MissingRequiredBindingError(ActionPackValidationError):
    def __init__(self, key: str) -> None:
        super().__init__(f"missing required binding {key!r}")
        self.key = key


class InvalidBindingTypeError(ActionPackValidationError):
    def __init__(self, key: str, expected: str) -> None:
        super().__init__(f"binding {key!r} is not a valid {expected}")
        self.key = key
        self.expected = expected


class FailedPreconditionError(ActionPackValidationError):
    def __init__(self, key: str, expected_contains: str) -> None:
        super().__init__(f"binding {key!r} does not contain {expected_contains!r}")
        self.key = key
        self.expected_contains = expected_contains


class ActionPackExecutionError(ScreenFlowError):
    """Base class for failures inside a single pack step."""


class StepTemplateMissingError(ActionPackExecutionError):
    def __init__(self, step_id: str) -> None:
        super().__init__(f"step {step_id!r} has no template")
        self.step_id = step_id
