"""Loader for the declarative catalog of metric groups and dashboards.

The catalog is a JSON document shaped as::

    {"config": {"metric_groups": [...], "dashboards": [...]}}

Each entry is kept as a compact JSON string so it can be sent unchanged as
the body of a create or update call.
"""

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from copperegg_writer.core.exceptions import CatalogParseError

logger = logging.getLogger(__name__)

CATALOG_RESOURCE = "copperegg_config.json"


@dataclass(frozen=True)
class Catalog:
    """Catalog entries keyed by declared name.

    Attributes:
        groups: Metric-group name to JSON body.
        dashboards: Dashboard name to JSON body.
    """

    groups: dict[str, str] = field(default_factory=dict)
    dashboards: dict[str, str] = field(default_factory=dict)


def _read_text(path: str | Path | None) -> str:
    try:
        if path is None:
            resource = resources.files("copperegg_writer") / "data" / CATALOG_RESOURCE
            return resource.read_text(encoding="utf-8")
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogParseError(f"No catalog found at {path or CATALOG_RESOURCE}") from e


def _entries(config: dict[str, Any], key: str) -> dict[str, str]:
    items = config.get(key)
    if not isinstance(items, list):
        raise CatalogParseError(f"Expected a list under config.{key}")
    entries: dict[str, str] = {}
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise CatalogParseError(f"Entry without a name under config.{key}")
        entries[item["name"]] = json.dumps(item, separators=(",", ":"))
    return entries


def parse_catalog(text: str) -> Catalog:
    """Parse catalog JSON text.

    Raises:
        CatalogParseError: If the text is not JSON or lacks the expected keys.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise CatalogParseError(f"Catalog is not valid JSON: {e}") from e
    if not isinstance(document, dict) or not isinstance(document.get("config"), dict):
        raise CatalogParseError("Catalog has no top-level 'config' object")
    config = document["config"]
    return Catalog(
        groups=_entries(config, "metric_groups"),
        dashboards=_entries(config, "dashboards"),
    )


def load_catalog(path: str | Path | None = None) -> Catalog:
    """Load the catalog from ``path``, or the bundled copy when None.

    Raises:
        CatalogParseError: If the file is missing or malformed.
    """
    catalog = parse_catalog(_read_text(path))
    logger.debug(
        "Loaded catalog with %d metric groups and %d dashboards",
        len(catalog.groups),
        len(catalog.dashboards),
    )
    return catalog
