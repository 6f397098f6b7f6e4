"""Single-request generation: the attempt / validate / repair loop."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from types import ModuleType
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from output_engine import prompt as default_prompt
from output_engine.exceptions import BackendConfigError, BackendError
from output_engine.json_engine import decode_output
from output_engine.runtime.concurrency import CancellationToken
from output_engine.schemas import Diagnostics, GenerateOptions, GenerationError, GenerationErrorCode
from output_engine.spec import Spec
from output_engine.telemetry import TelemetryBus

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    REPAIRING = "repairing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Attempt:
    """Per-call loop state; never shared between calls."""

    index: int = 0
    previous_output: Optional[str] = None
    diagnostics: Optional[Diagnostics] = None
    messages: List[Dict[str, str]] = field(default_factory=list)


def backend_name(backend: Any) -> str:
    return getattr(backend, "name", None) or type(backend).__name__


def _make_error(
    code: GenerationErrorCode,
    reason: str,
    message: str,
    attempts: int = 0,
    details: Optional[Dict[str, Any]] = None,
    last_diagnostics: Optional[Diagnostics] = None,
) -> GenerationError:
    return GenerationError(
        code=code,
        reason=reason,
        message=message,
        attempts=attempts,
        details=details or {},
        last_diagnostics=last_diagnostics,
    )


def resolve_options(
    spec: Any,
    backend: Any,
    backend_opts: Optional[Dict[str, Any]],
    max_retries: Any,
    telemetry_metadata: Optional[Dict[str, Any]],
) -> Tuple[Optional[GenerateOptions], Optional[GenerationError]]:
    """Validate generate() arguments; returns (options, None) or (None, configuration error)."""
    if not isinstance(spec, Spec):
        return None, _make_error(
            GenerationErrorCode.CONFIGURATION,
            "invalid_spec",
            f"{type(spec).__name__} does not implement to_schema/validate",
        )
    if backend is None:
        return None, _make_error(GenerationErrorCode.CONFIGURATION, "no_backend", "No backend configured")
    try:
        options = GenerateOptions(
            backend=backend,
            backend_opts=backend_opts if backend_opts is not None else {},
            max_retries=max_retries,
            telemetry_metadata=telemetry_metadata if telemetry_metadata is not None else {},
        )
    except ValidationError as exc:
        first = exc.errors()[0]
        option = str(first["loc"][0]) if first["loc"] else "options"
        return None, _make_error(
            GenerationErrorCode.CONFIGURATION,
            f"invalid_{option}",
            first["msg"],
            details={"option": option},
        )
    return options, None


class Generation:
    """Drives one generate() call through its states."""

    def __init__(
        self,
        spec: Spec,
        options: GenerateOptions,
        telemetry: Optional[TelemetryBus] = None,
        prompt_builder: Union[ModuleType, Any, None] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.spec = spec
        self.options = options
        self.telemetry = telemetry
        self.prompt = prompt_builder or default_prompt
        self.cancel_token = cancel_token
        self.state = GenerationState.ATTEMPTING
        self.attempt_count = 0
        self.metadata = {**options.telemetry_metadata, "backend": backend_name(options.backend)}

    def _transition(self, state: GenerationState) -> None:
        logger.debug("Generation %s -> %s", self.state.value, state.value)
        self.state = state

    def _call_options(self) -> Dict[str, Any]:
        call_options = dict(self.options.backend_opts)
        if self.cancel_token is not None:
            call_options["cancel_token"] = self.cancel_token
        return call_options

    def run(self) -> Tuple[Any, Optional[GenerationError]]:
        start = time.perf_counter()
        if self.telemetry:
            self.telemetry.generation_started(self.metadata)
        try:
            value, error = self._loop()
        except Exception as exc:
            if self.telemetry:
                duration_ms = (time.perf_counter() - start) * 1000
                self.telemetry.generation_exception(duration_ms, self.attempt_count, exc, self.metadata)
            raise

        if self.telemetry:
            duration_ms = (time.perf_counter() - start) * 1000
            status = "ok" if error is None else error.code.value
            self.telemetry.generation_stopped(duration_ms, self.attempt_count, {**self.metadata, "status": status})
        return value, error

    def _fail(self, error: GenerationError) -> Tuple[None, GenerationError]:
        self._transition(GenerationState.FAILED)
        logger.info("Generation failed after %d attempt(s): %s (%s)", self.attempt_count, error.code.value, error.reason)
        return None, error

    def _loop(self) -> Tuple[Any, Optional[GenerationError]]:
        max_attempts = self.options.max_retries
        attempt = Attempt(messages=list(self.prompt.build_initial(self.spec)))

        while True:
            if attempt.index >= max_attempts:
                return self._fail(_make_error(
                    GenerationErrorCode.MAX_RETRIES_EXCEEDED,
                    "max_retries_exceeded",
                    f"No valid output after {attempt.index} attempt(s)",
                    attempts=attempt.index,
                    last_diagnostics=attempt.diagnostics,
                ))
            if self.cancel_token is not None and self.cancel_token.is_cancelled:
                return self._fail(_make_error(
                    GenerationErrorCode.CANCELLED,
                    "cancelled",
                    "Generation cancelled",
                    attempts=attempt.index,
                    last_diagnostics=attempt.diagnostics,
                ))

            self.attempt_count = attempt.index + 1
            if self.telemetry:
                self.telemetry.attempt_started(attempt.index, self.metadata)
            logger.debug("Attempt %d of %d", self.attempt_count, max_attempts)

            try:
                raw = self.options.backend.call(attempt.messages, self._call_options())
            except BackendConfigError as exc:
                return self._fail(_make_error(
                    GenerationErrorCode.CONFIGURATION,
                    exc.reason,
                    exc.message,
                    attempts=self.attempt_count,
                    details=exc.details,
                ))
            except BackendError as exc:
                if self.cancel_token is not None and self.cancel_token.is_cancelled:
                    return self._fail(_make_error(
                        GenerationErrorCode.CANCELLED,
                        "cancelled",
                        "Generation cancelled during backend call",
                        attempts=self.attempt_count,
                    ))
                return self._fail(_make_error(
                    GenerationErrorCode.BACKEND,
                    exc.reason,
                    exc.message,
                    attempts=self.attempt_count,
                    details=exc.details,
                ))

            self._transition(GenerationState.VALIDATING)
            value, diagnostics = decode_output(raw)
            if diagnostics is None:
                value, diagnostics = self.spec.validate(value)
            if diagnostics is None:
                self._transition(GenerationState.DONE)
                logger.info("Generation succeeded on attempt %d", self.attempt_count)
                return value, None

            logger.info("Attempt %d failed validation: %s", self.attempt_count, diagnostics.format())
            self._transition(GenerationState.REPAIRING)
            previous = raw if isinstance(raw, str) else json.dumps(raw, default=repr)
            attempt = Attempt(
                index=attempt.index + 1,
                previous_output=previous,
                diagnostics=diagnostics,
                messages=attempt.messages + list(self.prompt.build_repair(previous, diagnostics)),
            )
            self._transition(GenerationState.ATTEMPTING)


def generate(
    spec: Any,
    *,
    backend: Any = None,
    backend_opts: Optional[Dict[str, Any]] = None,
    max_retries: int = 3,
    telemetry_metadata: Optional[Dict[str, Any]] = None,
    telemetry: Optional[TelemetryBus] = None,
    prompt_builder: Any = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Tuple[Any, Optional[GenerationError]]:
    """Generate a value satisfying ``spec``.

    ``max_retries`` bounds total attempts (initial plus repairs). Returns
    (value, None) on success or (None, GenerationError); branch on
    ``error.code``. Backend failures are not retried.
    """
    options, error = resolve_options(spec, backend, backend_opts, max_retries, telemetry_metadata)
    if error is not None:
        logger.warning("Generation misconfigured: %s (%s)", error.message, error.reason)
        return None, error
    return Generation(spec, options, telemetry, prompt_builder, cancel_token).run()
