"""BDD step definitions for reconciliation and export features."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from copperegg_writer.core.models import Query, Result
from copperegg_writer.writer import CopperEggWriter


@dataclass
class ExportScenarioContext:
    """State shared between the steps of one scenario."""

    sink: Any = None
    catalog_path: Path | None = None
    writer: CopperEggWriter | None = None
    results: list[Result] = field(default_factory=list)


@pytest.fixture
def ctx() -> ExportScenarioContext:
    """Fresh scenario context for each test."""
    return ExportScenarioContext()


def _start_writer(
    ctx: ExportScenarioContext, base_settings: dict[str, Any], source: str, pid: int
) -> None:
    settings = {**base_settings, "source": source, "catalogPath": str(ctx.catalog_path)}
    ctx.writer = CopperEggWriter(
        settings, transport=ctx.sink.transport, pid_provider=lambda: pid
    )
    ctx.writer.start()


def _write(ctx: ExportScenarioContext, result: Result) -> None:
    ctx.sink.requests.clear()
    ctx.sink.samples.clear()
    ctx.writer.write(Query([result]))


# === Given ===


@given("a sink with no metric groups")
def given_empty_sink(ctx: ExportScenarioContext, sink_factory) -> None:
    ctx.sink = sink_factory()


@given(parsers.parse('a sink with metric group "{name}" as "{sink_id}"'))
def given_sink_with_group(
    ctx: ExportScenarioContext, sink_factory, name: str, sink_id: str
) -> None:
    ctx.sink = sink_factory(metric_groups=[{"id": sink_id, "name": name}])


@given(parsers.parse('a catalog declaring groups "{names}"'))
def given_catalog(ctx: ExportScenarioContext, catalog_factory, names: str) -> None:
    ctx.catalog_path = catalog_factory([name.strip() for name in names.split(",")])


@given(parsers.parse('a writer for source "{source}" with PID {pid:d} has started'))
def given_started_writer(
    ctx: ExportScenarioContext, base_settings: dict[str, Any], source: str, pid: int
) -> None:
    _start_writer(ctx, base_settings, source, pid)


# === When ===


@when(parsers.parse('a writer for source "{source}" with PID {pid:d} starts'))
def when_writer_starts(
    ctx: ExportScenarioContext, base_settings: dict[str, Any], source: str, pid: int
) -> None:
    _start_writer(ctx, base_settings, source, pid)


@when("the writer is stopped and started again")
def when_writer_restarts(ctx: ExportScenarioContext) -> None:
    ctx.writer.stop()
    ctx.writer.start()


@when(parsers.parse('the host reports "{name}" = {value:d} at {epoch:d}'))
def when_host_reports(
    ctx: ExportScenarioContext, name: str, value: int, epoch: int
) -> None:
    _write(ctx, Result(epoch_ms=epoch, type_name=name, values={"n": value}))


@when(
    parsers.parse(
        'the host reports "{name}" with alias "{alias}" and summary "{summary}" at {epoch:d}'
    )
)
def when_host_reports_summary(
    ctx: ExportScenarioContext, name: str, alias: str, summary: str, epoch: int
) -> None:
    _write(
        ctx,
        Result(epoch_ms=epoch, type_name=name, values=summary, class_name_alias=alias),
    )


# === Then ===


@then(parsers.parse('group "{group}" receives {document}'))
def then_group_receives(ctx: ExportScenarioContext, group: str, document: str) -> None:
    sink_id = ctx.writer.ids[group]
    posts = ctx.sink.calls("POST")
    assert posts == [("POST", f"/samples/{sink_id}.json")]
    assert ctx.sink.requests[-1].content == document.encode()
    assert ctx.sink.samples == [(str(sink_id), json.loads(document))]


@then("nothing is uploaded")
def then_nothing_uploaded(ctx: ExportScenarioContext) -> None:
    assert ctx.sink.requests == []


@then("no errors are counted")
def then_no_errors(ctx: ExportScenarioContext) -> None:
    assert ctx.writer.exception_count() == 0


@then(parsers.parse('the sink received "{method} {path}"'))
def then_sink_received(ctx: ExportScenarioContext, method: str, path: str) -> None:
    assert (method, path) in ctx.sink.calls()


@then(parsers.parse('group "{group}" has ID "{sink_id}"'))
def then_group_has_id(ctx: ExportScenarioContext, group: str, sink_id: str) -> None:
    assert ctx.writer.ids[group] == sink_id


@then(parsers.parse("the sink holds {count:d} metric groups"))
def then_sink_holds(ctx: ExportScenarioContext, count: int) -> None:
    assert len(ctx.sink.collections["metric_groups"]) == count
