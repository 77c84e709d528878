"""Server collision detection for the calculator Thing.

Detects whether a Thing server is already listening on a port before a new
one is started, and lets scripts and tests wait for startup.

Detection Strategy:
    GET the Thing Description at /<thing name> with Accept: application/json.
    - JSON object whose "title" is the Thing name -> THING_SERVER
    - Connection refused -> NO_SERVER
    - Any other HTTP response -> OTHER_SERVICE
    - Timeout -> TIMEOUT
    - Other error -> ERROR

Example usage:
    result = await detect_server(3000, "http-calculator-content-negotiation")
    if result == DetectionResult.NO_SERVER:
        # Safe to start a new server
        pass
"""

import asyncio
from enum import Enum

import httpx

from wotcalc.core.representations import JSON


class DetectionResult(Enum):
    """Result of server detection probe.

    Attributes:
        NO_SERVER: Port is free, no service listening.
        THING_SERVER: A Thing server with the expected name answered.
        OTHER_SERVICE: Something else is running on the port.
        TIMEOUT: Connection attempt timed out.
        ERROR: An unexpected error occurred during detection.
    """

    NO_SERVER = "no_server"
    THING_SERVER = "thing_server"
    OTHER_SERVICE = "other_service"
    TIMEOUT = "timeout"
    ERROR = "error"


async def detect_server(
    port: int,
    thing_name: str,
    host: str = "127.0.0.1",
    timeout: float = 2.0,
) -> DetectionResult:
    """Detect if a Thing server is running on the specified port.

    Args:
        port: The port to probe.
        thing_name: Name the Thing is expected to be served under.
        host: The host to probe. Defaults to localhost.
        timeout: Connection/request timeout in seconds. Defaults to 2.0.

    Returns:
        DetectionResult indicating what was found on the port.
    """
    url = f"http://{host}:{port}/{thing_name}"

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url, headers={"Accept": JSON})
            return _analyze_response(response, thing_name)

    except httpx.ConnectError:
        # Connection refused = no server on this port
        return DetectionResult.NO_SERVER

    except httpx.TimeoutException:
        return DetectionResult.TIMEOUT

    except httpx.HTTPError:
        return DetectionResult.ERROR


def _analyze_response(response: httpx.Response, thing_name: str) -> DetectionResult:
    """A Thing server answers 200 with a JSON Thing Description titled thing_name."""
    if response.status_code != 200:
        return DetectionResult.OTHER_SERVICE

    try:
        data = response.json()
    except ValueError:
        return DetectionResult.OTHER_SERVICE

    if not isinstance(data, dict):
        return DetectionResult.OTHER_SERVICE
    if data.get("title") != thing_name:
        return DetectionResult.OTHER_SERVICE
    if not isinstance(data.get("properties"), dict):
        return DetectionResult.OTHER_SERVICE

    return DetectionResult.THING_SERVER


async def wait_for_server(
    port: int,
    thing_name: str,
    host: str = "127.0.0.1",
    timeout: float = 30.0,
    poll_interval: float = 0.1,
) -> bool:
    """Poll until a Thing server is detected or the timeout expires.

    Returns:
        True if the server was detected within the timeout.
    """
    elapsed = 0.0
    probe_timeout = min(1.0, timeout / 10)  # Short timeout per probe

    while elapsed < timeout:
        result = await detect_server(port, thing_name, host, timeout=probe_timeout)
        if result == DetectionResult.THING_SERVER:
            return True

        # Any other result may be a startup race; keep waiting
        await asyncio.sleep(poll_interval)
        elapsed += poll_interval

    return False
