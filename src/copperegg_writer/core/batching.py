"""Grouping of classified records into per-(second, source-id) batches."""

from collections.abc import Iterable, Iterator
from itertools import groupby

from copperegg_writer.core.models import ClassifiedRecord, UploadBatch


def _batch_key(record: ClassifiedRecord) -> tuple[int, str]:
    return record.timestamp_s, record.source_id


def sort_records(records: Iterable[ClassifiedRecord]) -> list[ClassifiedRecord]:
    """Stable sort by timestamp ascending, then source-id lexicographically."""
    return sorted(records, key=_batch_key)


def iter_batches(records: Iterable[ClassifiedRecord]) -> Iterator[UploadBatch]:
    """Yield one UploadBatch per run of equal (timestamp_s, source_id).

    Records are sorted first, so each pair appears in exactly one batch and
    batches come out in sorted order. Within a batch, a metric key seen twice
    keeps its last value. No batch is yielded for empty input.

    Args:
        records: Records of a single metric group, in any order.

    Yields:
        UploadBatch objects ready for encoding.
    """
    for (timestamp_s, source_id), run in groupby(sort_records(records), _batch_key):
        values = {record.metric_key: record.value for record in run}
        yield UploadBatch(source_id=source_id, timestamp_s=timestamp_s, values=values)
