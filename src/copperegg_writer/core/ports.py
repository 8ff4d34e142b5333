"""Port interfaces for the writer's collaborators.

The reconciler, uploader and writer depend only on these protocols, not on
the httpx-backed implementation, so tests can substitute fakes.
"""

from typing import Protocol, runtime_checkable

from copperegg_writer.core.models import HttpResponse


@runtime_checkable
class SinkClientPort(Protocol):
    """Port for JSON calls to the sink's REST API.

    Implementations resolve ``path`` against the configured base URL and
    never raise for transport failures; they report them in
    HttpResponse.error instead.
    """

    def request(
        self, method: str, path: str, body: str | None = None
    ) -> HttpResponse:
        """Send one request and return the fully drained response."""
        ...


@runtime_checkable
class ExceptionCounterPort(Protocol):
    """Port for the per-writer count of handled errors."""

    def increment(self) -> int:
        """Record one handled error and return the new total."""
        ...

    @property
    def value(self) -> int:
        """Current total."""
        ...
