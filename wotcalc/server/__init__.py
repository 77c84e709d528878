"""HTTP server for the calculator Thing.

Example usage:
    python -m wotcalc serve  # Start the Thing on port 3000
    curl -H "Accept: application/cbor" \\
        http://localhost:3000/http-calculator-content-negotiation/properties/result
"""

from wotcalc.server.bootstrap import ThingComponents, bootstrap_thing, configure_server_logging
from wotcalc.server.detection import DetectionResult, detect_server, wait_for_server
from wotcalc.server.dispatcher import (
    Dispatcher,
    ObservationGrant,
    ThingRequest,
    ThingResponse,
)
from wotcalc.server.http import ThingServer, run_http_server
from wotcalc.server.watch import StateWatcher, Subscription

__all__ = [
    # Bootstrap
    "ThingComponents",
    "bootstrap_thing",
    "configure_server_logging",
    # Detection
    "DetectionResult",
    "detect_server",
    "wait_for_server",
    # Dispatch
    "Dispatcher",
    "ObservationGrant",
    "ThingRequest",
    "ThingResponse",
    # HTTP
    "ThingServer",
    "run_http_server",
    # Observation
    "StateWatcher",
    "Subscription",
]
