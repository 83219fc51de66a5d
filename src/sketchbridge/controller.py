"""Run controller tying the transpiler, scaffold and message channel together."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from .config import BridgeSettings, load_settings
from .linemap import ErrorLineMapper
from .messaging import ErrorReport, MessageChannel, MessageType
from .scaffold import InjectedScript, build_plain_script, build_sketch_script
from .symbols import SymbolTable, load_symbols
from .transpiler import Transpiler
from .utils import new_sketch_id

SKETCH_PATTERN = re.compile(
    r"\b(?:function\s+setup\b|(?:const|let|var)\s+setup\b|setup\s*=(?!=))", re.IGNORECASE
)


def looks_like_sketch(source: str) -> bool:
    """Return True if *source* defines a ``setup`` hook."""

    return SKETCH_PATTERN.search(source) is not None


class InjectionError(RuntimeError):
    """The execution context reported a load failure for an injected script."""

    def __init__(self, message: str, *, stack: str | None = None) -> None:
        self.message = message
        self.stack = stack
        super().__init__(message)


class RuntimeSketchError(Exception):
    """An error reported by a running sketch, with lines mapped to the source."""

    def __init__(
        self,
        message: str,
        *,
        mapped_text: str,
        stack: str | None = None,
        sketch_id: str | None = None,
    ) -> None:
        self.message = message
        self.stack = stack
        self.mapped_text = mapped_text
        self.sketch_id = sketch_id
        super().__init__(mapped_text)


class ScriptInjector(Protocol):
    """Loads a script into the execution context, resolving once it has loaded."""

    async def inject(self, script: str) -> None:
        """Raise :class:`InjectionError` if the script fails to load."""


@dataclass(slots=True)
class RunOutcome:
    success: bool
    sketch_id: str | None
    text: str | None = None
    transpiled: str | None = None
    stale: bool = False


@dataclass(slots=True)
class _Attempt:
    number: int
    sketch_id: str
    source: str
    code: str
    script: InjectedScript
    mapper: ErrorLineMapper


class SketchRunner:
    """Execute sketches one attempt at a time through a :class:`ScriptInjector`.

    Each call to :meth:`run` is a new attempt with its own sketch identifier;
    the channel is reset and scoped to that identifier before injection, so
    messages from a previous attempt are dropped.  An attempt that is
    superseded while its injection is still pending reports ``stale=True``.
    """

    def __init__(
        self,
        injector: ScriptInjector,
        *,
        channel: MessageChannel | None = None,
        symbols: SymbolTable | None = None,
        settings: BridgeSettings | None = None,
        container_id: str = "sketch-container",
        on_error: Callable[[RuntimeSketchError], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.injector = injector
        self.channel = channel or MessageChannel.from_settings(self.settings)
        self.transpiler = Transpiler(
            symbols or load_symbols(self.settings.symbols_path),
            namespace=self.settings.instance_namespace,
            prefix=self.settings.rename_prefix,
        )
        self.container_id = container_id
        self._on_error = on_error
        self._logger = logger or logging.getLogger(__name__)
        self._attempts = 0
        self._current: _Attempt | None = None
        self.errors: list[RuntimeSketchError] = []
        self.channel.register_handler(MessageType.ERROR, self._handle_error_payload)

    @property
    def current_sketch_id(self) -> str | None:
        return self._current.sketch_id if self._current else None

    async def run(self, source: str) -> RunOutcome:
        self._attempts += 1
        number = self._attempts
        sketch_id = new_sketch_id()
        self.channel.reset()
        self.channel.expected_sketch_id = sketch_id
        self.errors.clear()

        if looks_like_sketch(source):
            outcome = self.transpiler.transpile(source)
            if not outcome.success:
                self._current = None
                return RunOutcome(success=False, sketch_id=sketch_id, text=f"Error: {outcome.error}")
            code = outcome.code or ""
            script = build_sketch_script(code, sketch_id, self.transpiler.namespace, self.container_id)
        else:
            code = source
            script = build_plain_script(source, sketch_id)

        attempt = _Attempt(
            number=number,
            sketch_id=sketch_id,
            source=source,
            code=code,
            script=script,
            mapper=script.mapper(source, code),
        )
        self._current = attempt

        try:
            await self.injector.inject(script.text)
        except InjectionError as exc:
            if self._is_stale(attempt):
                return RunOutcome(success=False, sketch_id=sketch_id, stale=True)
            self._logger.warning("Sketch script failed to load: %s", exc.message)
            text = self._map_text(attempt, _join(exc.message, exc.stack))
            return RunOutcome(success=False, sketch_id=sketch_id, text=text, transpiled=code)

        if self._is_stale(attempt):
            self._logger.debug("Ignoring load signal from superseded attempt %d", number)
            return RunOutcome(success=True, sketch_id=sketch_id, transpiled=code, stale=True)
        return RunOutcome(success=True, sketch_id=sketch_id, transpiled=code)

    def close(self) -> None:
        self._current = None
        self.channel.close()

    def _is_stale(self, attempt: _Attempt) -> bool:
        return self._current is None or self._current.number != attempt.number

    def _map_text(self, attempt: _Attempt, text: str) -> str:
        try:
            return attempt.mapper.map_error_message(text)
        except Exception:
            self._logger.warning("Line mapping failed; showing unmapped error", exc_info=True)
            return text

    def _handle_error_payload(self, payload: dict[str, Any]) -> None:
        attempt = self._current
        if attempt is None:
            self._logger.debug("Error report with no active attempt dropped")
            return
        try:
            report = ErrorReport.model_validate(payload)
        except ValidationError:
            report = ErrorReport(message=str(payload.get("message") or payload))
        error = RuntimeSketchError(
            report.message or "Unknown error",
            mapped_text=self._map_text(attempt, report.text()),
            stack=report.stack,
            sketch_id=attempt.sketch_id,
        )
        self.errors.append(error)
        if self._on_error is not None:
            self._on_error(error)


def _join(message: str, stack: str | None) -> str:
    if stack and stack != message:
        return f"{message}\n\n{stack}"
    return message
