"""
Coordinate acquisition with a bounded wait.

Device geolocation is best-effort: a source may be slow, may be denied
(returns None) or may fail. acquire_coordinates() never raises and never
waits longer than the timeout; anything other than a prompt answer
degrades to "no coordinates" and the patrol operation proceeds.

Each slow source runs on its own daemon thread, so a source that hangs
only costs its own request. Posted coordinates are already in hand and
are returned inline.

The HTTP layer resolves coordinates through a CoordinateLocator before
calling into the lifecycle, so the lifecycle itself never waits on a
device. Deployments and tests can override the locator dependency.
"""

import os
import logging
import threading
from typing import Callable, Optional

from schemas_patrols import Coordinates

logger = logging.getLogger(__name__)

GEOLOCATION_TIMEOUT = float(os.environ.get("PATROL_GEOLOCATION_TIMEOUT", "5"))

CoordinateSource = Callable[[], Optional[Coordinates]]


def acquire_coordinates(source: Optional[CoordinateSource], timeout: float = None) -> Optional[Coordinates]:
    """Run source with a bounded wait; None on timeout, denial or error."""
    if source is None:
        return None
    if getattr(source, "immediate", False):
        return source()
    timeout = GEOLOCATION_TIMEOUT if timeout is None else timeout

    outcome = {}

    def run():
        try:
            outcome["coordinates"] = source()
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=run, name="geolocation", daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        logger.warning(f"Geolocation timed out after {timeout}s - continuing without coordinates")
        return None
    if "error" in outcome:
        logger.warning(f"Geolocation failed: {outcome['error']} - continuing without coordinates")
        return None
    return outcome.get("coordinates")


def posted_coordinates(posted: Optional[Coordinates]) -> CoordinateSource:
    """Source that answers with the coordinates sent in the request body."""
    def source():
        return posted
    source.immediate = True
    return source


class CoordinateLocator:
    """Turns whatever the client posted into coordinates, within the timeout."""

    def __init__(
        self,
        timeout: float = None,
        source_factory: Callable[[Optional[Coordinates]], CoordinateSource] = posted_coordinates,
    ):
        self.timeout = GEOLOCATION_TIMEOUT if timeout is None else timeout
        self.source_factory = source_factory

    def __call__(self, posted: Optional[Coordinates] = None) -> Optional[Coordinates]:
        return acquire_coordinates(self.source_factory(posted), self.timeout)


def get_coordinate_locator() -> CoordinateLocator:
    """FastAPI dependency"""
    return CoordinateLocator()
