"""Core domain models for samples flowing from the host to the sink."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

Number = int | float


@dataclass(frozen=True)
class Result:
    """A raw sample handed over by the metric-collection host.

    Attributes:
        epoch_ms: Collection time in milliseconds since the epoch.
        type_name: Dotted metric path (e.g., jvm.os.OpenFileDescriptorCount).
        values: Numeric payload keyed by attribute name, or the host's
            already-summarized ``"{k=v}"`` string form.
        class_name_alias: Alias of the MBean class, used by the dynamic family.
        query: Opaque back-reference to the host query.
    """

    epoch_ms: int
    type_name: str
    values: Mapping[str, Any] | str = field(default_factory=dict)
    class_name_alias: str = ""
    query: Any = None


@dataclass
class Query:
    """A batch of results produced by one host query run."""

    results: list[Result] = field(default_factory=list)

    def get_results(self) -> list[Result]:
        return self.results


@dataclass(frozen=True)
class ClassifiedRecord:
    """A sample normalized into one logical metric group.

    Attributes:
        group_key: Metric-group name from the catalog (e.g., jvm_os).
        source_id: Origin tag, ``<source>.<pid>`` optionally extended.
        metric_key: Key written into the upload document's values.
        value: Converted numeric value.
        timestamp_s: Sample time truncated to whole seconds.
    """

    group_key: str
    source_id: str
    metric_key: str
    value: Number
    timestamp_s: int


@dataclass(frozen=True)
class UploadBatch:
    """One samples document: every value shares a second and a source-id."""

    source_id: str
    timestamp_s: int
    values: dict[str, Number] = field(default_factory=dict)


@dataclass(frozen=True)
class HttpResponse:
    """Outcome of one call to the sink.

    Attributes:
        status: HTTP status code, or 0 when no response was received.
        body: Fully drained response body.
        error: Transport-level failure, if any. A non-200 status alone is
            not an error; callers decide how to treat it.
    """

    status: int
    body: bytes = b""
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status == 200

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
