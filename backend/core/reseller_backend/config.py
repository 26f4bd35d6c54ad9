from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Immutable snapshot of the pricing/ledger engine knobs.

    Components take a snapshot in their constructor instead of reading
    settings at call time. A new snapshot (with a higher version) is built by
    ``EngineConfigProvider.refresh``.
    """

    version: int
    currency: str
    minor_unit: Decimal
    max_hierarchy_depth: int
    ledger_lock_timeout_ms: int
    commission_retry_max_attempts: int
    commission_retry_base_seconds: int


def _positive_int(raw: Mapping[str, Any], key: str, default: int) -> int:
    try:
        value = int(raw.get(key, default))
    except (TypeError, ValueError) as exc:
        raise ImproperlyConfigured(f"ENGINE[{key!r}] must be an integer.") from exc
    if value <= 0:
        raise ImproperlyConfigured(f"ENGINE[{key!r}] must be positive.")
    return value


def build_engine_config(raw: Mapping[str, Any] | None, *, version: int) -> EngineConfig:
    raw = raw or {}
    try:
        minor_unit = Decimal(str(raw.get("MINOR_UNIT", "0.01")))
    except InvalidOperation as exc:
        raise ImproperlyConfigured("ENGINE['MINOR_UNIT'] must be a decimal string.") from exc
    if minor_unit <= 0:
        raise ImproperlyConfigured("ENGINE['MINOR_UNIT'] must be positive.")

    return EngineConfig(
        version=version,
        currency=str(raw.get("CURRENCY") or "INR").upper(),
        minor_unit=minor_unit,
        max_hierarchy_depth=_positive_int(raw, "MAX_HIERARCHY_DEPTH", 32),
        ledger_lock_timeout_ms=_positive_int(raw, "LEDGER_LOCK_TIMEOUT_MS", 3000),
        commission_retry_max_attempts=_positive_int(raw, "COMMISSION_RETRY_MAX_ATTEMPTS", 8),
        commission_retry_base_seconds=_positive_int(raw, "COMMISSION_RETRY_BASE_SECONDS", 60),
    )


class EngineConfigProvider:
    """Owns the current EngineConfig snapshot and its refresh trigger."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: EngineConfig | None = None

    def current(self) -> EngineConfig:
        snapshot = self._current
        if snapshot is None:
            return self.refresh()
        return snapshot

    def refresh(self) -> EngineConfig:
        with self._lock:
            version = 1 if self._current is None else self._current.version + 1
            snapshot = build_engine_config(getattr(settings, "ENGINE", None), version=version)
            self._current = snapshot
        logger.info("engine.config.refreshed version=%s", snapshot.version)
        return snapshot


provider = EngineConfigProvider()


def get_engine_config() -> EngineConfig:
    return provider.current()


@receiver(setting_changed)
def _refresh_on_engine_setting_change(sender, setting, **_kwargs):
    if setting == "ENGINE":
        provider.refresh()
