"""Shared modules for the Atera operations dashboard and monthly review."""

from .config import ConfigurationError, MetricsSettings, load_config, resolve_path
from .logging_setup import configure_logging
from .atera_client import AteraClient, UpstreamError
from .cache import TTLCache
from .classifier import StatusClassifier, make_keyword_list
from .fixtures import FixtureError, load_json_fixture
from .reporting import MetricsReportWriter
from .workflow import MetricsService

__all__ = [
    "load_config",
    "resolve_path",
    "configure_logging",
    "ConfigurationError",
    "MetricsSettings",
    "AteraClient",
    "UpstreamError",
    "TTLCache",
    "StatusClassifier",
    "make_keyword_list",
    "FixtureError",
    "load_json_fixture",
    "MetricsReportWriter",
    "MetricsService",
]
