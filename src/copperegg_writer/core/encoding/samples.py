"""JSON encoder for samples upload documents."""

import json
from typing import Any

from copperegg_writer.core.models import UploadBatch


def encode_batch(batch: UploadBatch) -> dict[str, Any]:
    """Build the samples document for one batch.

    Args:
        batch: Values sharing one source-id and one second.

    Returns:
        Dict with ``identifier``, ``timestamp`` and ``values`` keys.
        Integers stay integers and floats stay floats in the values map.
    """
    return {
        "identifier": batch.source_id,
        "timestamp": batch.timestamp_s,
        "values": dict(batch.values),
    }


def dumps_batch(batch: UploadBatch) -> str:
    """Serialize one batch to compact JSON."""
    return json.dumps(encode_batch(batch), separators=(",", ":"), allow_nan=False)
