"""Negotiation dispatcher for the calculator Thing.

Each request moves through:

    ReceivePath -> ValidateResource -> {ServeDescription | HandleProperty |
    HandleAction | HandleEvent} -> Respond

Failures are raised as ThingError subclasses carrying their status, in this
precedence: routing (NotFound), method (MethodNotAllowed), negotiation
(UnsupportedMediaType before NotAcceptable), payload (BadRequest). State is
only touched after all checks pass.

The dispatcher knows nothing about HTTP framing; the server layer turns its
results into responses and observation streams.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from wotcalc.core.errors import (
    BadRequestError,
    MethodNotAllowedError,
    NotAcceptableError,
    NotFoundError,
    ObservationRequiredError,
    RepresentationDecodeError,
    Status,
    UnknownRepresentation,
    UnsupportedMediaTypeError,
)
from wotcalc.core.representations import Representation, RepresentationRegistry
from wotcalc.core.state import (
    MAX_SAFE_INTEGER,
    AccumulatorState,
    StateStore,
    is_representable,
)
from wotcalc.description.builder import DescriptionBuilder
from wotcalc.description.forms import AffordanceKind

logger = logging.getLogger(__name__)

# Path suffix accepted as an alternative to the Observe header on properties
OBSERVE_SEGMENT = "observe"


@dataclass
class ThingRequest:
    """Transport-independent view of an incoming request.

    Attributes:
        method: Request method (GET, POST, ...).
        path: Request path, query string allowed.
        headers: Lowercase header/option names to values.
        body: Raw request payload.
    """

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def accept(self) -> str | None:
        return self.headers.get("accept")

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type") or self.headers.get("content-format")

    @property
    def observe(self) -> bool:
        """True if the request registers an observation (Observe: 0)."""
        return self.headers.get("observe", "").strip() == "0"

    @property
    def segments(self) -> list[str]:
        path = self.path.split("?", 1)[0]
        return [segment for segment in path.split("/") if segment]


@dataclass
class ThingResponse:
    """One-shot response: a payload in the negotiated representation."""

    status: Status
    payload: bytes
    representation: Representation


@dataclass
class ObservationGrant:
    """Instruction to keep the channel open and stream changes of `key`."""

    key: str
    representation: Representation


DispatchResult = ThingResponse | ObservationGrant

PropertyReader = Callable[[AccumulatorState], object]
ActionHandler = Callable[[float], Awaitable[AccumulatorState]]


class Dispatcher:
    """Routes requests for one Thing to its property, action and event handlers.

    Example:
        dispatcher = Dispatcher("calc", store, registry, builder)
        result = await dispatcher.dispatch(
            ThingRequest("GET", "/calc/properties/result", {"accept": "application/cbor"})
        )
    """

    def __init__(
        self,
        thing_name: str,
        store: StateStore,
        registry: RepresentationRegistry,
        description: DescriptionBuilder,
    ) -> None:
        self._thing_name = thing_name
        self._store = store
        self._registry = registry
        self._description = description

        self._properties: dict[str, PropertyReader] = {
            "result": lambda state: state.value,
            "lastChange": lambda state: state.last_change_text,
        }
        self._actions: dict[str, ActionHandler] = {
            "add": self._store.apply,
            "subtract": lambda operand: self._store.apply(-operand),
        }
        self._events = frozenset({"update"})
        # Only properties whose description carries observe forms
        self._observable = frozenset(
            t.name
            for t in description.templates
            if t.kind is AffordanceKind.PROPERTY and t.observable
        )

    @property
    def thing_name(self) -> str:
        return self._thing_name

    async def dispatch(self, request: ThingRequest) -> DispatchResult:
        """Handle one request.

        Returns:
            A ThingResponse, or an ObservationGrant for observe/subscribe requests.

        Raises:
            ThingError: Subclass matching the failure; state is unchanged.
        """
        logger.debug("%s %s", request.method, request.path)
        segments = request.segments

        if not segments or segments[0] != self._thing_name:
            raise NotFoundError(f"Unknown Thing: /{'/'.join(segments)}")

        if len(segments) == 1:
            return self._serve_description(request)

        section = segments[1]
        if section == AffordanceKind.PROPERTY.value:
            return self._handle_property(request, segments[2:])
        if section == AffordanceKind.ACTION.value:
            return await self._handle_action(request, segments[2:])
        if section == AffordanceKind.EVENT.value:
            return self._handle_event(request, segments[2:])
        raise NotFoundError(f"Unknown section: {section}")

    # === Negotiation ===

    def _negotiate_response(self, request: ThingRequest) -> Representation:
        try:
            return self._registry.negotiate_accept(request.accept)
        except UnknownRepresentation as e:
            raise NotAcceptableError(f"Not acceptable: {request.accept}") from e

    def _negotiate_request(self, request: ThingRequest) -> Representation:
        try:
            return self._registry.get(request.content_type)
        except UnknownRepresentation as e:
            raise UnsupportedMediaTypeError(
                f"Unsupported media type: {request.content_type}"
            ) from e

    @staticmethod
    def _require_method(request: ThingRequest, method: str) -> None:
        if request.method != method:
            raise MethodNotAllowedError(
                f"Method not allowed: {request.method}. Use {method}.", allowed=method
            )

    # === Handlers ===

    def _serve_description(self, request: ThingRequest) -> ThingResponse:
        self._require_method(request, "GET")
        representation = self._negotiate_response(request)
        payload = representation.encode(self._description.current_description())
        return ThingResponse(Status.OK, payload, representation)

    def _handle_property(self, request: ThingRequest, rest: list[str]) -> DispatchResult:
        if not rest or rest[0] not in self._properties:
            raise NotFoundError(f"Unknown property: {'/'.join(rest)}")
        name = rest[0]
        observe = request.observe
        if len(rest) == 2 and rest[1] == OBSERVE_SEGMENT:
            observe = True
        elif len(rest) != 1:
            raise NotFoundError(f"Unknown property path: {'/'.join(rest)}")
        if observe and name not in self._observable:
            raise NotFoundError(f"Property '{name}' is not observable")

        self._require_method(request, "GET")
        representation = self._negotiate_response(request)

        if observe:
            return ObservationGrant(name, representation)

        value = self._properties[name](self._store.snapshot())
        return ThingResponse(Status.OK, representation.encode(value), representation)

    async def _handle_action(self, request: ThingRequest, rest: list[str]) -> ThingResponse:
        if len(rest) != 1 or rest[0] not in self._actions:
            raise NotFoundError(f"Unknown action: {'/'.join(rest)}")
        name = rest[0]

        self._require_method(request, "POST")
        body_representation = self._negotiate_request(request)
        representation = self._negotiate_response(request)

        operand = self._decode_operand(request.body, body_representation)
        state = await self._actions[name](operand)
        logger.info("Action %s(%s) -> %s", name, operand, state.value)
        return ThingResponse(Status.CHANGED, representation.encode(state.value), representation)

    def _handle_event(self, request: ThingRequest, rest: list[str]) -> ObservationGrant:
        if len(rest) != 1 or rest[0] not in self._events:
            raise NotFoundError(f"Unknown event: {'/'.join(rest)}")
        name = rest[0]

        self._require_method(request, "GET")
        if not request.observe:
            raise ObservationRequiredError(
                f"Observation required: event '{name}' is subscription-only (send Observe: 0)"
            )
        representation = self._negotiate_response(request)
        return ObservationGrant(name, representation)

    @staticmethod
    def _decode_operand(body: bytes, representation: Representation) -> int | float:
        """Decode an action operand; any finite number in range is accepted, zero included."""
        if not body:
            raise BadRequestError("Missing operand")
        try:
            operand = representation.decode(body)
        except RepresentationDecodeError as e:
            raise BadRequestError(e.message) from e

        # bool is an int subclass but not a number here
        if isinstance(operand, bool) or not isinstance(operand, (int, float)):
            raise BadRequestError(f"Operand must be a number, got {type(operand).__name__}")
        if isinstance(operand, float) and not math.isfinite(operand):
            raise BadRequestError(f"Operand must be finite, got {operand}")
        if not is_representable(operand):
            raise BadRequestError(
                f"Operand out of range: integers are limited to magnitude {MAX_SAFE_INTEGER}"
            )
        return operand
