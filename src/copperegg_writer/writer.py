"""Host-facing facade: start, write, validate and stop.

start() resolves settings, loads the catalog and reconciles it with the
sink, then publishes an immutable WriterState. write() may run from many
host threads at once; it only reads that state, and the exception counter
is the one shared mutable value.
"""

import logging
import os
import threading
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import httpx

from copperegg_writer.adapters.catalog import Catalog, load_catalog
from copperegg_writer.adapters.http import SinkClient
from copperegg_writer.adapters.reconciler import (
    DASHBOARDS,
    METRIC_GROUPS,
    Reconciler,
    SinkId,
    resolve_dynamic_id,
)
from copperegg_writer.adapters.uploader import Uploader
from copperegg_writer.core.batching import iter_batches
from copperegg_writer.core.classifier import DYNAMIC_GROUP, ClassifyContext, classify
from copperegg_writer.core.counter import ExceptionCounter
from copperegg_writer.core.exceptions import (
    CatalogParseError,
    ClassificationError,
    InvalidConfiguration,
)
from copperegg_writer.core.models import ClassifiedRecord, Query
from copperegg_writer.core.settings import WriterSettings

logger = logging.getLogger(__name__)

_EMPTY_IDS: Mapping[str, SinkId] = MappingProxyType({})


@dataclass(frozen=True)
class WriterState:
    """Everything write() needs, fixed once start() returns.

    Attributes:
        settings: Resolved settings.
        pid: Process ID captured at start.
        catalog: Local catalog that was reconciled.
        context: Source prefix and metric-group IDs for the classifier.
        dashboard_ids: Reconciled dashboard IDs by name.
        client: Shared HTTP client.
        uploader: Uploader bound to the client and the exception counter.
    """

    settings: WriterSettings
    pid: int
    catalog: Catalog
    context: ClassifyContext
    dashboard_ids: Mapping[str, SinkId]
    client: SinkClient
    uploader: Uploader


class CopperEggWriter:
    """Exports host metric samples to the CopperEgg metrics API.

    Example:
        ```python
        writer = CopperEggWriter({"token": "APIKEY", "source": "web-1"})
        writer.start()
        writer.write(query)
        writer.stop()
        ```
    """

    def __init__(
        self,
        settings: Mapping[str, Any],
        *,
        transport: httpx.BaseTransport | None = None,
        pid_provider: Callable[[], int] = os.getpid,
    ) -> None:
        """Initialize an unstarted writer.

        Args:
            settings: Raw host settings (url, token, source, proxy, timeout).
            transport: Optional httpx transport replacing the network.
            pid_provider: Returns the current process ID.
        """
        self._raw_settings = dict(settings)
        self._transport = transport
        self._pid_provider = pid_provider
        self._counter = ExceptionCounter()
        self._start_lock = threading.Lock()
        self._state: WriterState | None = None

    @property
    def ids(self) -> Mapping[str, SinkId]:
        """Reconciled metric-group IDs, including the dynamic family."""
        state = self._state
        return state.context.ids if state is not None else _EMPTY_IDS

    @property
    def dashboard_ids(self) -> Mapping[str, SinkId]:
        state = self._state
        return state.dashboard_ids if state is not None else _EMPTY_IDS

    @property
    def source_pid(self) -> str | None:
        state = self._state
        return state.context.source_pid if state is not None else None

    def exception_count(self) -> int:
        """Number of errors handled since this writer was created."""
        return self._counter.value

    def _load_catalog(self, settings: WriterSettings) -> Catalog:
        try:
            return load_catalog(settings.catalog_path)
        except CatalogParseError as e:
            self._counter.increment()
            logger.warning("Continuing with an empty catalog: %s", e)
            return Catalog()

    def start(self) -> None:
        """Resolve settings and reconcile the catalog with the sink.

        A second call from the same process is a no-op.

        Raises:
            InvalidConfiguration: If the settings cannot be used.
        """
        with self._start_lock:
            pid = self._pid_provider()
            if self._state is not None and self._state.pid == pid:
                logger.info("Started from two threads with the same PID, %d", pid)
                return

            try:
                settings = WriterSettings.from_mapping(self._raw_settings)
            except InvalidConfiguration:
                self._counter.increment()
                raise

            client = SinkClient.from_settings(settings, self._transport)
            catalog = self._load_catalog(settings)
            reconciler = Reconciler(client, self._counter)
            group_ids = reconciler.reconcile(METRIC_GROUPS, catalog.groups)
            dashboard_ids = reconciler.reconcile(DASHBOARDS, catalog.dashboards)

            ids = dict(group_ids)
            dynamic_id = resolve_dynamic_id(group_ids, settings.dynamic_group_id)
            if DYNAMIC_GROUP not in ids and dynamic_id is not None:
                ids[DYNAMIC_GROUP] = dynamic_id

            context = ClassifyContext(
                source_pid=f"{settings.source}.{pid}",
                ids=MappingProxyType(ids),
            )
            self._state = WriterState(
                settings=settings,
                pid=pid,
                catalog=catalog,
                context=context,
                dashboard_ids=MappingProxyType(dict(dashboard_ids)),
                client=client,
                uploader=Uploader(client, self._counter),
            )

        for name in catalog.groups:
            logger.info("%s groupID : %s", name, ids.get(name))
        logger.info("%s groupID : %s", DYNAMIC_GROUP, ids.get(DYNAMIC_GROUP))
        logger.info(
            "Started CopperEggWriter on '%s', connected to %s, proxy %s",
            context.source_pid,
            settings.url,
            settings.proxy_url,
        )

    def write(self, query: Query) -> None:
        """Classify a batch of results and upload it group by group.

        Args:
            query: Host query whose results are exported.
        """
        state = self._state
        if state is None:
            self._counter.increment()
            logger.warning("write() called before start(); dropping batch")
            return

        buffers: dict[str, list[ClassifiedRecord]] = defaultdict(list)
        for sample in query.get_results():
            try:
                record = classify(sample, state.context)
            except ClassificationError as e:
                self._counter.increment()
                logger.warning("Dropping sample %s: %s", sample.type_name, e)
                continue
            if record is None:
                logger.debug("No enabled group for %s", sample.type_name)
                continue
            buffers[record.group_key].append(record)

        with state.client.session():
            for group_key, records in buffers.items():
                state.uploader.upload_group(
                    state.context.ids[group_key], iter_batches(records)
                )

    def validate(self, query: Query) -> None:
        """Accept any query; the host calls this before scheduling writes."""
        logger.debug("Metric-group IDs: %s", dict(self.ids))

    def stop(self) -> None:
        """Unpublish the writer state and release the HTTP client.

        write() calls already in flight finish their uploads first. A later
        start() reconciles again.
        """
        with self._start_lock:
            state, self._state = self._state, None
        if state is not None:
            state.client.close()
            logger.info("Stopped CopperEggWriter on '%s'", state.context.source_pid)
