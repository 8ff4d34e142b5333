"""Startup reconciliation of the local catalog with the sink.

Metric groups and dashboards follow the same protocol: list the remote
collection, then update each local entry whose name already exists and
create the rest, recording the ID the sink returns.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from copperegg_writer.core.classifier import DYNAMIC_GROUP
from copperegg_writer.core.exceptions import ReconcileError
from copperegg_writer.core.models import HttpResponse
from copperegg_writer.core.ports import ExceptionCounterPort, SinkClientPort

logger = logging.getLogger(__name__)

SinkId = str | int


@dataclass(frozen=True)
class UpsertTarget:
    """A sink collection managed by reconciliation.

    Attributes:
        collection: Path segment of the collection (e.g., metric_groups).
        expect_int_id: True when the sink's IDs are numbers, False for text.
        show_hidden: Append ``?show_hidden=1`` to index and update calls.
    """

    collection: str
    expect_int_id: bool
    show_hidden: bool = False

    @property
    def _query(self) -> str:
        return "?show_hidden=1" if self.show_hidden else ""

    def index_path(self) -> str:
        return f"/{self.collection}.json{self._query}"

    def create_path(self) -> str:
        return f"/{self.collection}.json"

    def update_path(self, sink_id: SinkId) -> str:
        return f"/{self.collection}/{sink_id}.json{self._query}"


METRIC_GROUPS = UpsertTarget("metric_groups", expect_int_id=False, show_hidden=True)
DASHBOARDS = UpsertTarget("dashboards", expect_int_id=True)


def parse_id(node: Any, expect_int: bool) -> SinkId:
    """Extract the ``id`` field of a sink object.

    Raises:
        ReconcileError: If the object has no id of the expected type.
    """
    sink_id = node.get("id") if isinstance(node, dict) else None
    if expect_int:
        if isinstance(sink_id, int) and not isinstance(sink_id, bool):
            return sink_id
    elif isinstance(sink_id, str):
        return sink_id
    kind = "integer" if expect_int else "string"
    raise ReconcileError(f"Expected a {kind} id, got {sink_id!r}")


def _json_body(response: HttpResponse) -> Any:
    try:
        return json.loads(response.body)
    except ValueError as e:
        raise ReconcileError(f"Response is not JSON: {e}") from e


def _check(response: HttpResponse, method: str, path: str) -> None:
    if response.error is not None:
        raise ReconcileError(f"{method} {path} failed: {response.error}")
    if response.status != 200:
        raise ReconcileError(
            f"{method} {path} returned {response.status}: {response.text}"
        )


def resolve_dynamic_id(
    group_ids: Mapping[str, SinkId], default: SinkId | None
) -> SinkId | None:
    """Return the dynamic family's ID after reconciliation.

    The last reconciled metric-group ID containing the dynamic family's
    name (case-insensitive) replaces the configured default.
    """
    resolved = default
    for sink_id in group_ids.values():
        if DYNAMIC_GROUP in str(sink_id).lower():
            resolved = sink_id
    return resolved


class Reconciler:
    """Idempotent upsert of catalog entries against one sink collection.

    Entries are processed one at a time. A failure on one entry is counted
    and logged, and the remaining entries still run.
    """

    def __init__(self, client: SinkClientPort, counter: ExceptionCounterPort) -> None:
        self._client = client
        self._counter = counter

    def _index(self, target: UpsertTarget) -> dict[str, SinkId]:
        path = target.index_path()
        response = self._client.request("GET", path)
        _check(response, "GET", path)
        document = _json_body(response)
        if not isinstance(document, list):
            raise ReconcileError(f"GET {path} did not return a JSON array")

        remote: dict[str, SinkId] = {}
        for node in document:
            if not isinstance(node, dict) or not isinstance(node.get("name"), str):
                continue
            try:
                sink_id = parse_id(node, target.expect_int_id)
            except ReconcileError:
                logger.debug("Ignoring remote %s without id: %r", target.collection, node)
                continue
            remote.setdefault(node["name"], sink_id)
        return remote

    def _upsert(
        self,
        target: UpsertTarget,
        body: str,
        existing_id: SinkId | None,
    ) -> SinkId:
        if existing_id is not None:
            method, path = "PUT", target.update_path(existing_id)
        else:
            method, path = "POST", target.create_path()
        response = self._client.request(method, path, body)
        _check(response, method, path)
        return parse_id(_json_body(response), target.expect_int_id)

    def reconcile(
        self, target: UpsertTarget, entries: Mapping[str, str]
    ) -> dict[str, SinkId]:
        """Create or update every entry and return the sink IDs by name.

        Args:
            target: The collection to reconcile.
            entries: Local entry name to JSON body.

        Returns:
            IDs of the entries that were upserted successfully. Empty when
            there is nothing to reconcile or the remote index is unusable.
        """
        if not entries:
            return {}
        try:
            remote = self._index(target)
        except ReconcileError as e:
            self._counter.increment()
            logger.warning("Cannot list %s: %s", target.collection, e)
            return {}

        ids: dict[str, SinkId] = {}
        for name, body in entries.items():
            try:
                ids[name] = self._upsert(target, body, remote.get(name))
            except ReconcileError as e:
                self._counter.increment()
                logger.warning("Cannot upsert %s %r: %s", target.collection, name, e)
                continue
            logger.debug("Reconciled %s %r as %r", target.collection, name, ids[name])
        return ids
