"""Secure message channel between a controller and its sketch execution context.

Every inbound event passes the guards below in order; the first failing guard
drops the event silently (debug log only):

1. origin is an allowed origin, or an allowed origin plus ``:<port>``
2. sender is the expected source, when one is configured
3. payload is a mapping with a string ``type``
4. sketch identifier is present / matches, when required or configured
5. a handler is registered for the type
6. payload can be deep-copied for the handler

Handler failures are logged and never reach the caller of :meth:`handle`.
"""

from __future__ import annotations

import copy
import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError, field_validator

from .config import DEFAULT_ALLOWED_ORIGINS, BridgeSettings
from .linemap import LINE_PATTERNS
from .throttle import ResizeThrottle

logger = logging.getLogger(__name__)

_PORT_SUFFIX = re.compile(r":[0-9]+")

Handler = Callable[[dict[str, Any]], None]


class MessageType(str, Enum):
    READY = "ready"
    RESIZE = "resize"
    ERROR = "error"
    EXECUTION_COMPLETE = "execution-complete"


class MessageRejected(Exception):
    """An inbound event failed one of the channel guards."""

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class HandlerThrew(RuntimeError):
    """A registered handler raised while processing a message."""

    def __init__(self, message_type: str) -> None:
        self.message_type = message_type
        super().__init__(f"handler for {message_type!r} raised")


@dataclass(slots=True)
class MessageEvent:
    origin: str
    data: Any
    source: Any = None


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    sketch_instance_id: str | None = Field(default=None, alias="sketchInstanceId")


class ReadyMessage(_Payload):
    pass


class CompleteMessage(_Payload):
    pass


class ResizeMessage(_Payload):
    width: StrictInt | StrictFloat
    height: StrictInt | StrictFloat

    @field_validator("width", "height")
    @classmethod
    def _finite_size(cls, value: int | float) -> int | float:
        if not math.isfinite(value) or value < 0:
            raise ValueError("dimension must be a finite non-negative number")
        return value


class ErrorReport(_Payload):
    type: str = MessageType.ERROR.value
    message: str | None = None
    stack: str | None = None
    lineno: int | None = None

    def text(self) -> str:
        """Message and stack joined the way they are shown to the user.

        When neither carries a line position (a thrown string has no stack),
        the listener's ``lineno`` is appended as ``(line N)``.
        """

        message = self.message or "Unknown error"
        text = message
        if self.stack and self.stack != message:
            text = f"{message}\n\n{self.stack}"
        if self.lineno and not any(pattern.search(text) for pattern in LINE_PATTERNS):
            text = f"{text} (line {self.lineno})"
        return text


def is_origin_allowed(origin: str, allowed: Iterable[str]) -> bool:
    """Exact match, or an allowed origin followed by ``:`` and only digits."""

    allowed = list(allowed)
    if origin in allowed:
        return True
    for candidate in allowed:
        if origin.startswith(candidate + ":") and _PORT_SUFFIX.fullmatch(origin[len(candidate) :]):
            return True
    return False


def _clone(payload: Mapping[str, Any]) -> dict[str, Any]:
    try:
        return dict(copy.deepcopy(payload))
    except Exception:
        logger.debug("deepcopy failed, falling back to JSON round-trip", exc_info=True)
    try:
        return json.loads(json.dumps(payload))
    except (TypeError, ValueError) as exc:
        raise MessageRejected("clone", str(exc)) from exc


class MessageChannel:
    def __init__(
        self,
        *,
        allowed_origins: Iterable[str] | None = None,
        expected_source: Any = None,
        sketch_id: str | None = None,
        require_sketch_id: bool = False,
        throttle_ms: float = 150,
        on_ready: Callable[[str | None], None] | None = None,
        on_resize: Callable[[int | float, int | float, str | None], None] | None = None,
        on_error: Callable[[ErrorReport], None] | None = None,
        on_execution_complete: Callable[[str | None], None] | None = None,
        clock: Callable[[], float] | None = None,
        loop: Any = None,
    ) -> None:
        origins = list(allowed_origins) if allowed_origins else list(DEFAULT_ALLOWED_ORIGINS)
        self._allowed: list[str] = []
        for origin in origins:
            self.add_allowed_origin(origin)
        self._expected_source = expected_source
        self._sketch_id = sketch_id
        self.require_sketch_id = require_sketch_id
        self._handlers: dict[str, Handler] = {}
        self._closed = False
        throttle_kwargs: dict[str, Any] = {"loop": loop}
        if clock is not None:
            throttle_kwargs["clock"] = clock
        self._throttle: ResizeThrottle | None = None

        if on_ready is not None:
            self._handlers[MessageType.READY.value] = lambda payload: on_ready(
                self._validate(ReadyMessage, payload).sketch_instance_id
            )
        if on_execution_complete is not None:
            self._handlers[MessageType.EXECUTION_COMPLETE.value] = lambda payload: on_execution_complete(
                self._validate(CompleteMessage, payload).sketch_instance_id
            )
        if on_resize is not None:
            throttle = ResizeThrottle(on_resize, throttle_ms, **throttle_kwargs)
            self._throttle = throttle
            self._handlers[MessageType.RESIZE.value] = lambda payload: self._route_resize(throttle, payload)
        if on_error is not None:
            self._handlers[MessageType.ERROR.value] = lambda payload: on_error(
                self._validate(ErrorReport, payload)
            )

    @classmethod
    def from_settings(cls, settings: BridgeSettings, **kwargs: Any) -> "MessageChannel":
        kwargs.setdefault("allowed_origins", settings.allowed_origins)
        kwargs.setdefault("throttle_ms", settings.resize_throttle_ms)
        kwargs.setdefault("require_sketch_id", settings.require_sketch_id)
        return cls(**kwargs)

    @property
    def allowed_origins(self) -> tuple[str, ...]:
        return tuple(self._allowed)

    @property
    def expected_sketch_id(self) -> str | None:
        return self._sketch_id

    @expected_sketch_id.setter
    def expected_sketch_id(self, value: str | None) -> None:
        self._sketch_id = value

    @property
    def closed(self) -> bool:
        return self._closed

    def add_allowed_origin(self, origin: str) -> None:
        origin = origin.strip().rstrip("/")
        if not origin or "*" in origin:
            raise ValueError(f"Refusing wildcard or empty origin {origin!r}")
        if origin not in self._allowed:
            self._allowed.append(origin)

    def register_handler(self, message_type: MessageType | str, callback: Handler) -> None:
        """Route *message_type* payloads (as plain dicts) to *callback*.

        Replaces any handler already registered for the type, including the
        typed callbacks given to the constructor.
        """

        try:
            key = MessageType(message_type).value
        except ValueError:
            raise ValueError(f"Unknown message type {message_type!r}") from None
        self._handlers[key] = callback

    def handle(self, event: MessageEvent) -> bool:
        """Validate and route *event*; return True if a handler ran successfully."""

        if self._closed:
            return False
        try:
            message_type, payload = self._admit(event)
        except MessageRejected as exc:
            logger.debug("Dropped message from %s (%s)", event.origin, exc)
            return False

        handler = self._handlers[message_type]
        try:
            handler(payload)
        except MessageRejected as exc:
            logger.debug("Dropped %s message from %s (%s)", message_type, event.origin, exc)
            return False
        except Exception as exc:
            error = HandlerThrew(message_type)
            error.__cause__ = exc
            logger.warning("message handler failure", exc_info=error)
            return False
        return True

    def reset(self) -> None:
        """Forget resize dedup state before a new execution attempt."""

        if self._throttle is not None:
            self._throttle.reset()

    def close(self) -> None:
        if self._throttle is not None:
            self._throttle.cancel()
        self._handlers.clear()
        self._closed = True

    def _admit(self, event: MessageEvent) -> tuple[str, dict[str, Any]]:
        if not is_origin_allowed(event.origin, self._allowed):
            raise MessageRejected("origin", event.origin)

        expected = self._expected_source
        if callable(expected):
            expected = expected()
        if expected is not None and event.source is not expected:
            raise MessageRejected("source")

        data = event.data
        if not isinstance(data, Mapping) or not isinstance(data.get("type"), str):
            raise MessageRejected("shape")
        message_type = data["type"]

        sketch_id = data.get("sketchInstanceId")
        if not isinstance(sketch_id, str) or not sketch_id:
            sketch_id = None
        if self.require_sketch_id and sketch_id is None:
            raise MessageRejected("identity", "missing sketchInstanceId")
        if self._sketch_id is not None and sketch_id != self._sketch_id:
            raise MessageRejected("identity", f"unexpected sketchInstanceId {sketch_id!r}")

        if message_type not in self._handlers:
            raise MessageRejected("type", f"unregistered message type {message_type!r}")

        return message_type, _clone(data)

    @staticmethod
    def _validate(model: type[_Payload], payload: dict[str, Any]) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise MessageRejected("shape", str(exc)) from exc

    def _route_resize(self, throttle: ResizeThrottle, payload: dict[str, Any]) -> None:
        message = self._validate(ResizeMessage, payload)
        throttle.submit(message.width, message.height, message.sketch_instance_id)
