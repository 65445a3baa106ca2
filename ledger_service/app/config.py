from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

DEFAULT_RECOVERY_INTERVAL_SECONDS = 3600.0


@dataclass(slots=True)
class PackageDefaults:
    """스냅샷/카탈로그 features 어디에도 값이 없을 때 쓰는 마지막 티어.

    credit_cap 이 None 이면 유저 패키지의 daily_points 를 상한으로 쓴다.
    """

    credit_cap: int | None = None
    recovery_rate: float = 0
    daily_usage_limit: int = 999_999
    manual_reset_per_day: int = 1


@dataclass(slots=True)
class LedgerConfig:
    recovery_interval_seconds: float = DEFAULT_RECOVERY_INTERVAL_SECONDS
    package_defaults: PackageDefaults = field(default_factory=PackageDefaults)


@dataclass(slots=True)
class AppConfig:
    """ledger-service 전체 설정 루트."""

    ledger: LedgerConfig


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다.

    파일이 없으면 None 을 반환하고 기본값으로 동작한다.
    """

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _parse_number(
    section: dict[str, Any],
    key: str,
    default: Any,
    path: Path | None,
    cast: Callable[[Any], Any] = int,
) -> Any:
    raw_value = section.get(key)
    if raw_value is None:
        return default
    try:
        return cast(raw_value)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(
            f"invalid ledger.package_defaults.{key} in {path}: {raw_value!r}",
        ) from exc


def parse_ledger_config(data: dict[str, Any], path: Path | None = None) -> LedgerConfig:
    ledger = data.get("ledger") or {}

    raw_interval = ledger.get("recovery_interval_seconds", DEFAULT_RECOVERY_INTERVAL_SECONDS)
    try:
        interval = float(raw_interval)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(
            f"invalid ledger.recovery_interval_seconds in {path}: {raw_interval!r}",
        ) from exc
    if interval <= 0:
        raise RuntimeError(
            f"ledger.recovery_interval_seconds must be positive in {path}: {raw_interval!r}",
        )

    fallback = PackageDefaults()
    defaults_raw = ledger.get("package_defaults") or {}
    defaults = PackageDefaults(
        credit_cap=_parse_number(defaults_raw, "credit_cap", fallback.credit_cap, path),
        recovery_rate=_parse_number(
            defaults_raw, "recovery_rate", fallback.recovery_rate, path, float
        ),
        daily_usage_limit=_parse_number(
            defaults_raw, "daily_usage_limit", fallback.daily_usage_limit, path
        ),
        manual_reset_per_day=_parse_number(
            defaults_raw, "manual_reset_per_day", fallback.manual_reset_per_day, path
        ),
    )

    return LedgerConfig(recovery_interval_seconds=interval, package_defaults=defaults)


def load_config() -> AppConfig:
    """ledger-service 설정을 로드하여 AppConfig 로 반환한다."""

    path = _find_config_path()
    data: dict[str, Any] = {}
    if path is not None:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    return AppConfig(ledger=parse_ledger_config(data, path))
