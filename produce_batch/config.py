"""
Batching configuration (``produce_batch.config``).

Responsibility
--------------
Loads the YAML batching configuration and parses it into frozen
dataclasses.  The packaged ``defaults.yaml`` is used when no path is given.
Two environment variables override file values:

* ``PRODUCE_BATCH_SCHEDULER_ENABLED`` -- ``0``/``false``/``no``/``off``
  disables the scheduler (e.g. under test), anything else enables it.
* ``PRODUCE_BATCH_BILL_STORAGE_DIR`` -- bill archive root directory.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from produce_kernel.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).with_name("defaults.yaml")

ENV_SCHEDULER_ENABLED = "PRODUCE_BATCH_SCHEDULER_ENABLED"
ENV_BILL_STORAGE_DIR = "PRODUCE_BATCH_BILL_STORAGE_DIR"

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):(\d{2})$")
# Firm ids end up in bill filenames; see BillArchive.
_FIRM_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class BusinessSettings:
    """Business identity and its fixed UTC offset (no daylight saving)."""

    name: str
    utc_offset: str = "+05:30"

    @property
    def tz(self) -> timezone:
        return parse_utc_offset(self.utc_offset)


@dataclass(frozen=True)
class BatchWindowSettings:
    first_cutoff_hour: int = 8
    second_cutoff_hour: int = 12
    precreate_minute: int = 1


@dataclass(frozen=True)
class SchedulerSettings:
    enabled: bool = True
    tick_interval_seconds: int = 30


@dataclass(frozen=True)
class BillSettings:
    storage_dir: Path = Path("storage/delivery-bills")


@dataclass(frozen=True)
class FirmConfig:
    """A billing entity; line items are split across firms by category."""

    id: str
    name: str
    address: str = ""
    phone: str = ""
    whatsapp: str = ""
    email: str = ""
    categories: frozenset[str] = frozenset()
    is_default: bool = False


@dataclass(frozen=True)
class BatchingConfig:
    """Complete, validated batching configuration."""

    business: BusinessSettings
    batches: BatchWindowSettings = field(default_factory=BatchWindowSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    bills: BillSettings = field(default_factory=BillSettings)
    firms: tuple[FirmConfig, ...] = ()

    def __post_init__(self) -> None:
        validate_config(self)

    @property
    def default_firm(self) -> FirmConfig:
        return next(f for f in self.firms if f.is_default)

    def firm(self, firm_id: str) -> FirmConfig | None:
        for candidate in self.firms:
            if candidate.id == firm_id:
                return candidate
        return None


# =============================================================================
# Parsing
# =============================================================================


def parse_utc_offset(value: str) -> timezone:
    """Parse ``+HH:MM`` / ``-HH:MM`` into a fixed-offset timezone."""
    match = _OFFSET_RE.match(str(value).strip())
    if not match:
        raise ConfigurationError(
            f"business.utc_offset must look like +HH:MM or -HH:MM, got {value!r}"
        )
    sign, hours, minutes = match.groups()
    if int(minutes) >= 60:
        raise ConfigurationError(f"business.utc_offset minutes out of range: {value!r}")
    delta = timedelta(hours=int(hours), minutes=int(minutes))
    if delta > timedelta(hours=14):
        raise ConfigurationError(f"business.utc_offset beyond +-14:00: {value!r}")
    return timezone(-delta if sign == "-" else delta)


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_VALUES
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


def _parse_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    return value


def parse_firm(data: Mapping[str, Any]) -> FirmConfig:
    if not data.get("id") or not data.get("name"):
        raise ConfigurationError(
            f"Firm missing required fields (id, name): {dict(data)!r}"
        )
    return FirmConfig(
        id=str(data["id"]),
        name=str(data["name"]),
        address=str(data.get("address", "")),
        phone=str(data.get("phone", "")),
        whatsapp=str(data.get("whatsapp", "")),
        email=str(data.get("email", "")),
        categories=frozenset(str(c) for c in data.get("categories") or ()),
        is_default=bool(data.get("is_default", False)),
    )


def parse_config(data: Mapping[str, Any]) -> BatchingConfig:
    """Build a BatchingConfig from an already-loaded YAML mapping."""
    business = data.get("business") or {}
    batches = data.get("batches") or {}
    scheduler = data.get("scheduler") or {}
    bills = data.get("bills") or {}

    return BatchingConfig(
        business=BusinessSettings(
            name=str(business.get("name", "")),
            utc_offset=str(business.get("utc_offset", "+05:30")),
        ),
        batches=BatchWindowSettings(
            first_cutoff_hour=_parse_int(
                batches.get("first_cutoff_hour", 8), "batches.first_cutoff_hour"
            ),
            second_cutoff_hour=_parse_int(
                batches.get("second_cutoff_hour", 12), "batches.second_cutoff_hour"
            ),
            precreate_minute=_parse_int(
                batches.get("precreate_minute", 1), "batches.precreate_minute"
            ),
        ),
        scheduler=SchedulerSettings(
            enabled=_parse_bool(scheduler.get("enabled", True), "scheduler.enabled"),
            tick_interval_seconds=_parse_int(
                scheduler.get("tick_interval_seconds", 30),
                "scheduler.tick_interval_seconds",
            ),
        ),
        bills=BillSettings(
            storage_dir=Path(bills.get("storage_dir", "storage/delivery-bills")),
        ),
        firms=tuple(parse_firm(f) for f in data.get("firms") or ()),
    )


def validate_config(config: BatchingConfig) -> None:
    """Raise ConfigurationError if ``config`` cannot drive the batching engine."""
    parse_utc_offset(config.business.utc_offset)

    h1 = config.batches.first_cutoff_hour
    h2 = config.batches.second_cutoff_hour
    if not (0 <= h1 < h2 <= 23):
        raise ConfigurationError(
            f"cutoff hours must satisfy 0 <= first < second <= 23, got {h1} and {h2}"
        )
    if not (0 <= config.batches.precreate_minute <= 59):
        raise ConfigurationError("batches.precreate_minute must be within 0..59")
    if config.scheduler.tick_interval_seconds <= 0:
        raise ConfigurationError("scheduler.tick_interval_seconds must be positive")

    if not config.firms:
        raise ConfigurationError("No firms defined")
    defaults = [f for f in config.firms if f.is_default]
    if not defaults:
        raise ConfigurationError("No default firm defined")
    if len(defaults) > 1:
        raise ConfigurationError("Multiple default firms defined")
    invalid = sorted(f.id for f in config.firms if not _FIRM_ID_RE.fullmatch(f.id))
    if invalid:
        raise ConfigurationError(
            f"Firm IDs may only contain letters, digits, _ and -: {', '.join(invalid)}"
        )
    ids = [f.id for f in config.firms]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate firm IDs: {', '.join(duplicates)}")


def apply_env_overrides(
    config: BatchingConfig,
    environ: Mapping[str, str] | None = None,
) -> BatchingConfig:
    env = os.environ if environ is None else environ

    if ENV_SCHEDULER_ENABLED in env:
        config = replace(
            config,
            scheduler=replace(
                config.scheduler,
                enabled=_parse_bool(env[ENV_SCHEDULER_ENABLED], ENV_SCHEDULER_ENABLED),
            ),
        )
    if env.get(ENV_BILL_STORAGE_DIR):
        config = replace(
            config,
            bills=replace(config.bills, storage_dir=Path(env[ENV_BILL_STORAGE_DIR])),
        )
    return config


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BatchingConfig:
    """
    Load the batching configuration.

    Args:
        path: YAML file to read.  Defaults to the packaged defaults.yaml.
        environ: Environment mapping for overrides.  Defaults to os.environ.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    with open(source) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{source} must contain a mapping at top level")
    return apply_env_overrides(parse_config(data), environ)
