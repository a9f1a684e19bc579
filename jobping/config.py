"""Load settings from config/jobping.yaml and the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobping.errors import ConfigError
from jobping.log import get_logger
from jobping.models import Source, SourceConfig

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "jobping.yaml"
PROFILES_PATH: Path = CONFIG_DIR / "profiles.yaml"
DATA_DIR: Path = ROOT_DIR / "data"


@dataclass(frozen=True)
class IngestionSettings:
    max_workers: int = 4
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    batch_size: int = 100
    default_timeout: float = 20.0


@dataclass(frozen=True)
class NormalizerSettings:
    exclude_title_keywords: tuple[str, ...] = (
        "senior", "sr.", "lead", "principal", "staff", "director",
        "head of", "engineering manager", "vice president", "vp ", "chief",
    )
    require_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class FallbackWeights:
    role: float = 0.35
    seniority: float = 0.20
    city: float = 0.25
    language: float = 0.10
    work_environment: float = 0.10


@dataclass(frozen=True)
class MatchingSettings:
    top_n: int = 5
    freshness_days: float = 7.0
    freshness_boost: float = 0.10
    max_per_company: int = 2
    lookback_days: float = 30.0
    weights: FallbackWeights = field(default_factory=FallbackWeights)


@dataclass(frozen=True)
class ScorerSettings:
    enabled: bool = True
    api_key: str = ""
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama-3.3-70b-versatile"
    timeout: float = 20.0
    max_tokens: int = 1200
    temperature: float = 0.3
    max_candidates: int = 30


@dataclass(frozen=True)
class RateLimitSettings:
    scorer_limit: int = 30
    scorer_window: float = 60.0
    ingest_limit: int = 5
    ingest_window: float = 3600.0
    match_limit: int = 60
    match_window: float = 60.0
    sweep_probability: float = 0.01


@dataclass(frozen=True)
class Settings:
    ingestion: IngestionSettings = field(default_factory=IngestionSettings)
    normalizer: NormalizerSettings = field(default_factory=NormalizerSettings)
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    scorer: ScorerSettings = field(default_factory=ScorerSettings)
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    sources: tuple[SourceConfig, ...] = ()
    profiles_path: Path = PROFILES_PATH
    store_path: Path | None = None
    ledger_path: Path | None = None


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _build(cls: type, values: dict[str, Any], section: str) -> Any:
    known = set(cls.__dataclass_fields__)
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"unknown keys in '{section}': {', '.join(sorted(unknown))}")
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        default = getattr(cls(), key)
        if isinstance(default, tuple) and isinstance(value, list):
            value = tuple(str(v).lower() for v in value)
        elif isinstance(default, bool):
            value = bool(value)
        elif isinstance(default, (int, float)) and not isinstance(value, (int, float)):
            try:
                value = type(default)(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{section}.{key}: expected a number, got {value!r}") from exc
        coerced[key] = value
    return cls(**coerced)


def parse_sources(entries: list[Any], default_timeout: float = 20.0) -> tuple[SourceConfig, ...]:
    sources: list[SourceConfig] = []
    seen: set[str] = set()
    for entry in entries or []:
        if not isinstance(entry, dict):
            raise ConfigError(f"source entry must be a mapping, got {entry!r}")
        try:
            source = Source(str(entry.get("source", "")).lower())
        except ValueError as exc:
            raise ConfigError(f"unknown source type {entry.get('source')!r}") from exc
        name = str(entry.get("name") or f"{source.value}:{entry.get('company') or entry.get('url', '')}")
        if name in seen:
            raise ConfigError(f"duplicate source name {name!r}")
        seen.add(name)
        options = {
            k: v for k, v in entry.items()
            if k not in ("name", "source", "company", "url", "timeout", "enabled")
        }
        sources.append(
            SourceConfig(
                name=name,
                source=source,
                company=str(entry.get("company", "")),
                url=str(entry.get("url", "")),
                timeout=float(entry.get("timeout", default_timeout)),
                enabled=bool(entry.get("enabled", True)),
                options=options,
            )
        )
    return tuple(sources)


def _resolve(value: Path | str) -> Path:
    """Relative paths in settings are relative to the repository root."""
    path = Path(value)
    return path if path.is_absolute() else ROOT_DIR / path


def load_settings(path: Path | str | None = None) -> Settings:
    """Read the YAML settings file and apply environment overrides."""
    settings_path = Path(path or get_env("JOBPING_CONFIG") or SETTINGS_PATH)
    data: dict[str, Any] = {}
    if settings_path.exists():
        with open(settings_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{settings_path.name} must contain a mapping")
    else:
        log.warning("Settings file %s not found, using defaults", settings_path)

    ingestion_cfg = _section(data, "ingestion")
    if get_env("INGEST_MAX_WORKERS"):
        ingestion_cfg["max_workers"] = get_env("INGEST_MAX_WORKERS")
    if get_env("INGEST_BATCH_SIZE"):
        ingestion_cfg["batch_size"] = get_env("INGEST_BATCH_SIZE")
    ingestion = _build(IngestionSettings, ingestion_cfg, "ingestion")
    if ingestion.max_workers < 1 or ingestion.batch_size < 1 or ingestion.max_attempts < 1:
        raise ConfigError("ingestion.max_workers, batch_size and max_attempts must be >= 1")

    matching_cfg = dict(_section(data, "matching"))
    weights = _build(FallbackWeights, matching_cfg.pop("weights", None) or {}, "matching.weights")
    matching = _build(MatchingSettings, matching_cfg, "matching")
    if matching.top_n < 1:
        raise ConfigError("matching.top_n must be >= 1")
    matching = replace(matching, weights=weights)

    scorer_cfg = _section(data, "scorer")
    scorer_cfg["api_key"] = (
        get_env("SCORER_API_KEY") or get_env("GROQ_API_KEY") or get_env("OPENAI_API_KEY")
        or str(scorer_cfg.get("api_key", ""))
    )
    for env_key, cfg_key in (("SCORER_BASE_URL", "base_url"), ("SCORER_MODEL", "model"), ("SCORER_TIMEOUT", "timeout")):
        if get_env(env_key):
            scorer_cfg[cfg_key] = get_env(env_key)
    scorer = _build(ScorerSettings, scorer_cfg, "scorer")

    profiles_path = _resolve(get_env("JOBPING_PROFILES") or data.get("profiles_path") or PROFILES_PATH)
    store_value = get_env("JOBPING_STORE") or data.get("store_path")
    ledger_value = get_env("JOBPING_LEDGER") or data.get("ledger_path")

    return Settings(
        ingestion=ingestion,
        normalizer=_build(NormalizerSettings, _section(data, "normalizer"), "normalizer"),
        matching=matching,
        scorer=scorer,
        rate_limits=_build(RateLimitSettings, _section(data, "rate_limits"), "rate_limits"),
        sources=parse_sources(data.get("sources") or [], ingestion.default_timeout),
        profiles_path=profiles_path,
        store_path=_resolve(store_value) if store_value else None,
        ledger_path=_resolve(ledger_value) if ledger_value else None,
    )


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
