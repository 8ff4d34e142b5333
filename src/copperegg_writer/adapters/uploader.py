"""Delivery of samples documents to the sink."""

import logging
from collections.abc import Iterable

from copperegg_writer.core.encoding.samples import dumps_batch
from copperegg_writer.core.exceptions import UploadError
from copperegg_writer.core.models import UploadBatch
from copperegg_writer.core.ports import ExceptionCounterPort, SinkClientPort

logger = logging.getLogger(__name__)


def samples_path(group_id: str | int) -> str:
    return f"/samples/{group_id}.json"


class Uploader:
    """Posts samples documents for one metric group at a time.

    Failed batches are counted, logged and dropped; nothing is retried.
    """

    def __init__(self, client: SinkClientPort, counter: ExceptionCounterPort) -> None:
        self._client = client
        self._counter = counter

    def send(self, group_id: str | int, batch: UploadBatch) -> None:
        """Post one batch.

        Raises:
            UploadError: On a non-200 status, or with ``fatal`` set when no
                response was received.
        """
        path = samples_path(group_id)
        response = self._client.request("POST", path, dumps_batch(batch))
        if response.error is not None:
            raise UploadError(f"POST {path} failed: {response.error}", fatal=True)
        if response.status != 200:
            raise UploadError(f"POST {path} returned {response.status}: {response.text}")

    def upload_group(self, group_id: str | int, batches: Iterable[UploadBatch]) -> int:
        """Post every batch of a group in order.

        A rejected batch is skipped. A transport failure stops the group, so
        the remaining batches are dropped without further calls.

        Args:
            group_id: Reconciled sink ID of the metric group.
            batches: Batches in upload order.

        Returns:
            Number of batches the sink accepted.
        """
        delivered = 0
        for batch in batches:
            try:
                self.send(group_id, batch)
            except UploadError as e:
                self._counter.increment()
                logger.warning(
                    "Failure to send %d values of %s at %d to the sink: %s",
                    len(batch.values),
                    batch.source_id,
                    batch.timestamp_s,
                    e,
                )
                if e.fatal:
                    break
                continue
            delivered += 1
        return delivered
