"""Configuration helpers for the Atera metrics service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.atera.com/api/v3"
DEFAULT_COLLECTION_TTL_SECONDS = 30.0
DEFAULT_MONTHLY_TTL_MS = 12 * 60 * 60 * 1000
DEFAULT_MONTHLY_FIXTURE = "fixtures/monthly-review.sample.json"


class ConfigurationError(RuntimeError):
    """Raised when configuration cannot be loaded or a credential is missing."""


PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONFIG_LOCATIONS = (
    PACKAGE_ROOT / "config" / "config.yaml",
    PACKAGE_ROOT / "config" / "config.yml",
    Path("./config/config.yaml"),
    Path("./config/config.yml"),
    Path.home() / ".atera_metrics" / "config.yaml",
)


def resolve_path(path_str: str | None, *, base: Path | None = None) -> Path:
    """Resolve a path string that may be relative to an optional base directory."""
    base_path = base or Path.cwd()
    if not path_str:
        return base_path
    path = Path(path_str)
    if not path.is_absolute():
        path = base_path / path
    return path


def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """Load configuration from YAML.

    Parameters
    ----------
    path: Optional path to a configuration file. When supplied the file must
        exist. Otherwise the default locations are searched and an empty
        configuration is returned when none of them exists, so the service can
        run from environment variables alone.
    """
    if path:
        candidate = Path(path)
        if not candidate.exists():
            raise ConfigurationError(f"Configuration file {candidate} does not exist")
        return _read_yaml(candidate)

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return _read_yaml(candidate)
    LOGGER.debug("No configuration file found; relying on environment variables")
    return {}


def _read_yaml(candidate: Path) -> Dict[str, Any]:
    with candidate.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Unable to parse configuration file {candidate}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {candidate} must contain a mapping")
    return data


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class MetricsSettings:
    """Values consumed by the metrics layer, resolved from YAML and environment."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: int = 30
    page_size: int = 50
    max_pages: int = 40
    closed_keywords: Optional[str] = None
    pending_keywords: Optional[str] = None
    dashboard_fixture: Optional[str] = None
    monthly_fixture: Optional[str] = None
    collection_ttl_seconds: float = DEFAULT_COLLECTION_TTL_SECONDS
    monthly_ttl_ms: int = DEFAULT_MONTHLY_TTL_MS
    billable_max_workers: int = 8

    @property
    def monthly_ttl_seconds(self) -> float:
        return self.monthly_ttl_ms / 1000.0

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(
                "Missing Atera API key. Set atera.api_key in the configuration "
                "file or the ATERA_API_KEY environment variable."
            )
        return self.api_key

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "MetricsSettings":
        """Build settings from a loaded config; environment variables win."""
        env = os.environ if environ is None else environ
        atera_cfg = config.get("atera") or {}
        classifier_cfg = config.get("classifier") or {}
        fixtures_cfg = config.get("fixtures") or {}
        cache_cfg = config.get("cache") or {}
        billable_cfg = config.get("billable_hours") or {}

        monthly_ttl_ms = _parse_ttl_ms(
            env.get("MONTHLY_REVIEW_CACHE_TTL_MS"),
            cache_cfg.get("monthly_ttl_ms"),
        )

        return cls(
            api_key=_blank_to_none(env.get("ATERA_API_KEY")) or _blank_to_none(atera_cfg.get("api_key")),
            base_url=str(atera_cfg.get("base_url") or DEFAULT_BASE_URL),
            timeout=int(atera_cfg.get("timeout", 30)),
            page_size=int(atera_cfg.get("page_size", 50)),
            max_pages=int(atera_cfg.get("max_pages", 40)),
            closed_keywords=env.get("CLOSED_STATUS_KEYWORDS", classifier_cfg.get("closed_keywords")),
            pending_keywords=env.get("PENDING_STATUS_KEYWORDS", classifier_cfg.get("pending_keywords")),
            dashboard_fixture=_blank_to_none(env.get("DASHBOARD_FIXTURE"))
            or _blank_to_none(fixtures_cfg.get("dashboard")),
            monthly_fixture=_blank_to_none(env.get("MONTHLY_REVIEW_FIXTURE"))
            or _blank_to_none(fixtures_cfg.get("monthly", DEFAULT_MONTHLY_FIXTURE)),
            collection_ttl_seconds=float(
                cache_cfg.get("collection_ttl_seconds", DEFAULT_COLLECTION_TTL_SECONDS)
            ),
            monthly_ttl_ms=monthly_ttl_ms,
            billable_max_workers=max(1, int(billable_cfg.get("max_workers", 8))),
        )


def _parse_ttl_ms(*candidates: Any) -> int:
    for raw in candidates:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        try:
            value = int(float(raw))
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring invalid monthly cache TTL %r", raw)
            continue
        if value <= 0:
            LOGGER.warning("Ignoring non-positive monthly cache TTL %r", raw)
            continue
        return value
    return DEFAULT_MONTHLY_TTL_MS
