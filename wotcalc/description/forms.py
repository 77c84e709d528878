"""Form expansion: abstract affordances to concrete HTTP interaction forms.

Every affordance is described once per supported representation so that a
consumer can discover, from the Thing Description alone, every legal
representation pairing before issuing a request:

- properties: a read form per representation, plus an observe form per
  representation when the property is observable
- events: a subscribe form per representation
- actions: one form per (request, response) representation pair, covering
  the full cross product

Forms are built by a pure factory, make_form(), called once per pairing.

Example:
    registry = RepresentationRegistry.default()
    add = AffordanceTemplate(AffordanceKind.ACTION, "add", registry.default_representation)
    forms = expand_forms(add, registry)
    [(f.request.content_type, f.response.content_type) for f in forms]
    # [("application/json", "application/json"),
    #  ("application/json", "application/cbor"),
    #  ("application/cbor", "application/cbor"),
    #  ("application/cbor", "application/json")]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from wotcalc.core.representations import Representation, RepresentationRegistry

# Subprotocol marker for observe/subscribe forms (Server-Sent Events)
OBSERVE_SUBPROTOCOL = "sse"

# Request header carrying the observation flag; "0" registers an observation
OBSERVE_HEADER = "Observe"


class AffordanceKind(str, Enum):
    """Affordance category; the value is its Thing Description section."""

    PROPERTY = "properties"
    ACTION = "actions"
    EVENT = "events"


@dataclass(frozen=True)
class AffordanceTemplate:
    """One declared affordance before form expansion.

    Attributes:
        kind: Property, action or event.
        name: Unique key within its section.
        default: Representation used by the base form.
        observable: Properties only; events are always subscription-only.
    """

    kind: AffordanceKind
    name: str
    default: Representation
    observable: bool = False

    @property
    def path(self) -> str:
        """Path segment relative to the Thing root."""
        return f"{self.kind.value}/{self.name}"

    @property
    def method(self) -> str:
        return "POST" if self.kind is AffordanceKind.ACTION else "GET"


@dataclass(frozen=True)
class InteractionForm:
    """A concrete binding of an affordance to path, method and representations.

    Attributes:
        href: Path relative to the Thing's base URL.
        method: HTTP method.
        op: Thing Description operation type(s).
        response: Representation of the response payload.
        request: Representation of the request body (actions only).
        subprotocol: Present only on observe/subscribe forms.
    """

    href: str
    method: str
    op: tuple[str, ...]
    response: Representation
    request: Representation | None = None
    subprotocol: str | None = None

    @property
    def pair(self) -> tuple[str | None, str]:
        """(request, response) media types."""
        request = self.request.content_type if self.request else None
        return (request, self.response.content_type)

    def to_td(self) -> dict[str, Any]:
        """Render as a Thing Description form using the HTTP vocabulary."""
        headers = [{"htv:fieldName": "Accept", "htv:fieldValue": self.response.content_type}]
        if self.subprotocol is not None:
            headers.append({"htv:fieldName": OBSERVE_HEADER, "htv:fieldValue": "0"})

        form: dict[str, Any] = {
            "href": self.href,
            "op": self.op[0] if len(self.op) == 1 else list(self.op),
            "htv:methodName": self.method,
            "contentType": (self.request or self.response).content_type,
            "htv:headers": headers,
            "response": {"contentType": self.response.content_type},
        }
        if self.subprotocol is not None:
            form["subprotocol"] = self.subprotocol
        return form


_OPS: dict[tuple[AffordanceKind, bool], tuple[str, ...]] = {
    (AffordanceKind.PROPERTY, False): ("readproperty",),
    (AffordanceKind.PROPERTY, True): ("observeproperty", "unobserveproperty"),
    (AffordanceKind.ACTION, False): ("invokeaction",),
    (AffordanceKind.EVENT, True): ("subscribeevent", "unsubscribeevent"),
}


def make_form(
    affordance: AffordanceTemplate,
    response: Representation,
    request: Representation | None = None,
    observe: bool = False,
) -> InteractionForm:
    """Build the form for one affordance and representation pairing.

    Args:
        affordance: The affordance being described.
        response: Response representation.
        request: Request body representation; required for actions, ignored otherwise.
        observe: Build the observe/subscribe variant.

    Raises:
        ValueError: For combinations the affordance kind does not support.
    """
    op = _OPS.get((affordance.kind, observe))
    if op is None:
        raise ValueError(f"{affordance.kind.value}/{affordance.name} has no observe={observe} form")

    if affordance.kind is AffordanceKind.ACTION:
        if request is None:
            raise ValueError(f"Action form for {affordance.name} needs a request representation")
    else:
        request = None

    return InteractionForm(
        href=affordance.path,
        method=affordance.method,
        op=op,
        response=response,
        request=request,
        subprotocol=OBSERVE_SUBPROTOCOL if observe else None,
    )


def _action_pairs(
    default: Representation,
    registry: RepresentationRegistry,
) -> list[tuple[Representation, Representation]]:
    pairs = [(default, default)]
    for request in registry:
        if request != default:
            pairs.append((request, request))
        for response in registry:
            if response != request:
                pairs.append((request, response))
    return pairs


def expand_forms(
    affordance: AffordanceTemplate,
    registry: RepresentationRegistry,
) -> tuple[InteractionForm, ...]:
    """Expand one affordance into its ordered forms.

    The default representation comes first, then the others in registry
    order. With a single registered representation only the base form(s)
    are produced.

    Raises:
        UnknownRepresentation: If the affordance's default is not registered.
    """
    default = registry.get(affordance.default.content_type)

    if affordance.kind is AffordanceKind.ACTION:
        return tuple(
            make_form(affordance, response=response, request=request)
            for request, response in _action_pairs(default, registry)
        )

    ordered = [default, *(rep for rep in registry if rep != default)]
    forms: list[InteractionForm] = []
    for rep in ordered:
        if affordance.kind is AffordanceKind.PROPERTY:
            forms.append(make_form(affordance, rep))
            if affordance.observable:
                forms.append(make_form(affordance, rep, observe=True))
        else:
            forms.append(make_form(affordance, rep, observe=True))
    return tuple(forms)
