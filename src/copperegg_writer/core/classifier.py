"""Routing table mapping raw samples onto metric groups.

Each Route row pairs a predicate over the dotted name parts with the group
it feeds, how the source-id and metric key are built, and the unit
conversion applied to the value. classify() walks the table in order and
emits at most one ClassifiedRecord per sample.
"""

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from copperegg_writer.core.exceptions import ClassificationError
from copperegg_writer.core.models import ClassifiedRecord, Number, Result

# Group fed by every sample no row claims. Its sink ID starts from a
# configured default and is replaced when reconciliation finds a matching group.
DYNAMIC_GROUP = "cassandra"

# Samples under these prefixes are dropped when no row matches them.
ROUTED_PREFIXES = frozenset({"jmxtrans", "jvm", "tomcat", "cocktail"})

BYTES_PER_MIB = 1024.0 * 1024.0
NANOS_PER_SECOND = 1000.0 * 1000.0 * 1000.0
MILLIS_PER_MINUTE = 1000.0 * 60.0
# Tomcat reports processingTime in ms; the dashboards chart it over 1024.
TOMCAT_PROCESSING_TIME_DIVISOR = 1024.0

_INT32_RANGE = (-(2**31), 2**31)
_INT64_RANGE = (-(2**63), 2**63)

Parts = Sequence[str]


@dataclass(frozen=True)
class ClassifyContext:
    """Read-only state the classifier needs from the writer.

    Attributes:
        source_pid: ``<source>.<pid>`` prefix of every source-id.
        ids: Reconciled metric-group IDs keyed by group name.
    """

    source_pid: str
    ids: Mapping[str, Any]


@dataclass(frozen=True)
class Route:
    """One row of the routing table."""

    name: str
    group_key: str
    matches: Callable[[Parts], bool]
    source_id: Callable[[str, Parts], str]
    metric_key: Callable[[str, Parts], str]
    transform: Callable[[Any], Number]


def _to_number(value: Any) -> Number:
    """Coerce a host value to int or float, rejecting anything else."""
    if isinstance(value, bool):
        raise ClassificationError(f"Boolean value {value!r} is not numeric")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ClassificationError(f"Non-finite value {value!r}")
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError as e:
            raise ClassificationError(f"Value {value!r} is not numeric") from e
        if not math.isfinite(number):
            raise ClassificationError(f"Non-finite value {value!r}")
        return number
    raise ClassificationError(f"Value of type {type(value).__name__} is not numeric")


def sample_value(values: Mapping[str, Any] | str) -> Number:
    """Extract the single numeric payload of a sample.

    Args:
        values: The sample's values mapping (one entry expected) or a bare
            numeric string.

    Raises:
        ClassificationError: If there is not exactly one value or it is not
            numeric.
    """
    if isinstance(values, str):
        return _to_number(values)
    if len(values) != 1:
        raise ClassificationError(f"Expected a single value, got {len(values)}")
    return _to_number(next(iter(values.values())))


def identity(value: Any) -> Number:
    return _to_number(value)


def scaled(divisor: float) -> Callable[[Any], float]:
    """Return a transform dividing the value by ``divisor`` as a float."""

    def transform(value: Any) -> float:
        return float(_to_number(value)) / divisor

    return transform


# Source-id builders


def _pid_source(source_pid: str, parts: Parts) -> str:
    return source_pid


def _extended_source(*indexes: int) -> Callable[[str, Parts], str]:
    def build(source_pid: str, parts: Parts) -> str:
        return ".".join([source_pid, *(parts[i] for i in indexes)])

    return build


# Metric-key builders


def _full_name(type_name: str, parts: Parts) -> str:
    return type_name


def _fixed_key(key: str) -> Callable[[str, Parts], str]:
    def build(type_name: str, parts: Parts) -> str:
        return key

    return build


def _family_key(attr_index: int) -> Callable[[str, Parts], str]:
    """Key ``<p0>.<p1>.<attr>``, dropping the connector/webapp components."""

    def build(type_name: str, parts: Parts) -> str:
        return f"{parts[0]}.{parts[1]}.{parts[attr_index]}"

    return build


def _path(*expected: str | frozenset[str] | None) -> Callable[[Parts], bool]:
    """Predicate matching name parts position by position.

    A string must match exactly, a frozenset matches any member, and None
    matches any single part. The name must have at least as many parts.
    """

    def matches(parts: Parts) -> bool:
        if len(parts) < len(expected):
            return False
        for part, want in zip(parts, expected):
            if want is None:
                continue
            if isinstance(want, frozenset):
                if part not in want:
                    return False
            elif part != want:
                return False
        return True

    return matches


def _cocktail_app(parts: Parts) -> bool:
    return (
        len(parts) >= 2
        and parts[0] == "cocktail"
        and parts[1] not in {"CreatedCocktailCount", "UpdatedCocktailCount"}
    )


_GC_COLLECTORS = frozenset({"Copy", "MarkSweepCompact"})
_GC_ATTRS = frozenset({"CollectionCount", "CollectionTime"})
_NONHEAP_POOLS = frozenset({"Perm_Gen", "Code_Cache"})
_HEAP_POOLS = frozenset({"Eden_Space", "Survivor_Space", "Tenured_Gen"})
_POOL_ATTRS = frozenset({"committed", "used"})
_THREAD_POOL_ATTRS = frozenset({"currentThreadsBusy", "currentThreadCount"})
_SERVLET_ATTRS = frozenset({"processingTime", "errorCount", "requestCount"})
_SALES_COUNTERS = frozenset({"ordersCounter", "itemsCounter", "revenueInCentsCounter"})

ROUTES: tuple[Route, ...] = (
    Route("jmxtrans", "jmxtrans", _path("jmxtrans"), _pid_source, _full_name, identity),
    Route(
        "jvm.os.OpenFileDescriptorCount",
        "jvm_os",
        _path("jvm", "os", "OpenFileDescriptorCount"),
        _pid_source,
        _full_name,
        identity,
    ),
    Route(
        "jvm.os.CommittedVirtualMemorySize",
        "jvm_os",
        _path("jvm", "os", "CommittedVirtualMemorySize"),
        _pid_source,
        _full_name,
        scaled(BYTES_PER_MIB),
    ),
    Route(
        "jvm.os.ProcessCpuTime",
        "jvm_os",
        _path("jvm", "os", "ProcessCpuTime"),
        _pid_source,
        _full_name,
        scaled(NANOS_PER_SECOND),
    ),
    Route(
        "jvm.runtime.Uptime",
        "jvm_runtime",
        _path("jvm", "runtime", "Uptime"),
        _pid_source,
        _full_name,
        scaled(MILLIS_PER_MINUTE),
    ),
    Route(
        "jvm.loadedClasses.LoadedClassCount",
        "jvm_class",
        _path("jvm", "loadedClasses", "LoadedClassCount"),
        _pid_source,
        _full_name,
        identity,
    ),
    Route(
        "jvm.thread.ThreadCount",
        "jvm_thread",
        _path("jvm", "thread", "ThreadCount"),
        _pid_source,
        _full_name,
        identity,
    ),
    Route(
        "jvm.gc",
        "jvm_gc",
        _path("jvm", "gc", _GC_COLLECTORS, _GC_ATTRS),
        _pid_source,
        _full_name,
        identity,
    ),
    Route(
        "jvm.memorypool.nonheap",
        "nonheap",
        _path("jvm", "memorypool", _NONHEAP_POOLS, None, _POOL_ATTRS),
        _extended_source(2, 4),
        _fixed_key("jvmNonHeapMemoryUsage"),
        scaled(BYTES_PER_MIB),
    ),
    Route(
        "jvm.memorypool.heap",
        "heap",
        _path("jvm", "memorypool", _HEAP_POOLS, None, _POOL_ATTRS),
        _extended_source(2, 4),
        _fixed_key("jvmHeapMemoryUsage"),
        scaled(BYTES_PER_MIB),
    ),
    Route(
        "tomcat.thread-pool",
        "tomcat_thread_pool",
        _path("tomcat", "thread-pool", None, _THREAD_POOL_ATTRS),
        _extended_source(2),
        _family_key(3),
        identity,
    ),
    Route(
        "tomcat.global-request-processor.processingTime",
        "tomcat_grp",
        _path("tomcat", "global-request-processor", None, "processingTime"),
        _extended_source(2),
        _family_key(3),
        scaled(TOMCAT_PROCESSING_TIME_DIVISOR),
    ),
    Route(
        "tomcat.global-request-processor",
        "tomcat_grp",
        _path("tomcat", "global-request-processor", None, None),
        _extended_source(2),
        _family_key(3),
        identity,
    ),
    Route(
        "tomcat.manager",
        "tomcat_manager",
        _path("tomcat", "manager", None, None, "activeSessions"),
        _extended_source(2, 3),
        _family_key(4),
        identity,
    ),
    Route(
        "tomcat.servlet",
        "tomcat_servlet",
        _path("tomcat", "servlet", None, None, _SERVLET_ATTRS),
        _extended_source(2, 3),
        _family_key(4),
        identity,
    ),
    Route(
        "tomcat.data-source",
        "tomcat_db",
        _path("tomcat", "data-source", None, None, None, None),
        _extended_source(2, 3, 4),
        _family_key(5),
        identity,
    ),
    Route("cocktail", "app", _cocktail_app, _pid_source, _full_name, identity),
    Route(
        "sales",
        "app_sales",
        _path("sales", _SALES_COUNTERS),
        _pid_source,
        _full_name,
        identity,
    ),
)


def find_route(parts: Parts) -> Route | None:
    """Return the first row matching the name parts, if any."""
    for route in ROUTES:
        if route.matches(parts):
            return route
    return None


def timestamp_seconds(epoch_ms: int) -> int:
    """Truncate an epoch in milliseconds to whole seconds, toward zero."""
    if epoch_ms >= 0:
        return epoch_ms // 1000
    return -(-epoch_ms // 1000)


def summarize_values(values: Mapping[str, Any] | str) -> str:
    """Render values the way the host does: ``{k1=v1, k2=v2}``."""
    if isinstance(values, str):
        return values
    return "{" + ", ".join(f"{k}={v}" for k, v in values.items()) + "}"


def _parse_int(text: str, bounds: tuple[int, int]) -> int:
    try:
        number = int(text)
    except ValueError as e:
        raise ClassificationError(f"Value {text!r} is not an integer") from e
    low, high = bounds
    if not low <= number < high:
        raise ClassificationError(f"Value {text!r} is out of range")
    return number


def parse_dynamic_value(summary: str) -> tuple[str, Number]:
    """Split a ``{k=v}`` summary into its attribute and typed value.

    The value is a 64-bit integer when the attribute name contains "Size",
    a float when it is exactly "Load", and a 32-bit integer otherwise.

    Raises:
        ClassificationError: If the summary is malformed or the value does
            not fit the chosen type.
    """
    if len(summary) < 2 or summary[0] != "{" or summary[-1] != "}":
        raise ClassificationError(f"Malformed value summary {summary!r}")
    pieces = summary[1:-1].split("=")
    if len(pieces) < 2:
        raise ClassificationError(f"Malformed value summary {summary!r}")
    attr, raw = pieces[0], pieces[1]
    if "Size" in attr:
        return attr, _parse_int(raw, _INT64_RANGE)
    if attr == "Load":
        try:
            number = float(raw)
        except ValueError as e:
            raise ClassificationError(f"Value {raw!r} is not a float") from e
        if not math.isfinite(number):
            raise ClassificationError(f"Non-finite value {raw!r}")
        return attr, number
    return attr, _parse_int(raw, _INT32_RANGE)


def classify(sample: Result, context: ClassifyContext) -> ClassifiedRecord | None:
    """Map one raw sample to a classified record.

    Args:
        sample: Raw sample from the host.
        context: Source prefix and reconciled group IDs.

    Returns:
        The record, or None when the sample is not routed or its group has
        no reconciled ID.

    Raises:
        ClassificationError: If the sample's value cannot be converted.
    """
    parts = sample.type_name.split(".")
    timestamp_s = timestamp_seconds(sample.epoch_ms)

    route = find_route(parts)
    if route is not None:
        if context.ids.get(route.group_key) is None:
            return None
        return ClassifiedRecord(
            group_key=route.group_key,
            source_id=route.source_id(context.source_pid, parts),
            metric_key=route.metric_key(sample.type_name, parts),
            value=route.transform(sample_value(sample.values)),
            timestamp_s=timestamp_s,
        )

    if parts[0] in ROUTED_PREFIXES or context.ids.get(DYNAMIC_GROUP) is None:
        return None

    attr, value = parse_dynamic_value(summarize_values(sample.values))
    return ClassifiedRecord(
        group_key=DYNAMIC_GROUP,
        source_id=context.source_pid,
        metric_key=f"{sample.class_name_alias}.{attr}",
        value=value,
        timestamp_s=timestamp_s,
    )
