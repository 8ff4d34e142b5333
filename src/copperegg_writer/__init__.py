"""CopperEgg metrics writer for in-process metric collectors."""

from copperegg_writer.adapters.catalog import Catalog, load_catalog
from copperegg_writer.adapters.http import SinkClient
from copperegg_writer.adapters.reconciler import DASHBOARDS, METRIC_GROUPS, Reconciler
from copperegg_writer.adapters.uploader import Uploader
from copperegg_writer.core.classifier import ClassifyContext, classify
from copperegg_writer.core.exceptions import (
    CatalogParseError,
    ClassificationError,
    CopperEggError,
    InvalidConfiguration,
    ReconcileError,
    UploadError,
)
from copperegg_writer.core.models import (
    ClassifiedRecord,
    HttpResponse,
    Query,
    Result,
    UploadBatch,
)
from copperegg_writer.core.settings import WriterSettings
from copperegg_writer.writer import CopperEggWriter

__all__ = [
    "DASHBOARDS",
    "METRIC_GROUPS",
    "Catalog",
    "CatalogParseError",
    "ClassificationError",
    "ClassifiedRecord",
    "ClassifyContext",
    "CopperEggError",
    "CopperEggWriter",
    "HttpResponse",
    "InvalidConfiguration",
    "Query",
    "ReconcileError",
    "Reconciler",
    "Result",
    "SinkClient",
    "UploadBatch",
    "UploadError",
    "Uploader",
    "WriterSettings",
    "classify",
    "load_catalog",
]
