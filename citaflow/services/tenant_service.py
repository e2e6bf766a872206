"""Tenant configuration lookup.

Tenants live in a YAML file keyed by slug. The file is read on every lookup so that edits
take effect without a restart; nothing about a tenant is cached in-process.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from citaflow.config import settings
from citaflow.errors import ConfigurationError
from citaflow.logging_config import get_logger
from citaflow.models import (
    DEFAULT_REMINDER_TEMPLATES,
    AvailabilityStrategy,
    Location,
    ReminderTemplate,
    Tenant,
)

logger = get_logger("tenant_service")


class TenantResolver(Protocol):
    async def get_tenant(self, slug: str) -> Optional[Tenant]: ...

    async def get_tenant_by_device_id(self, device_id: str) -> Optional[Tenant]: ...


def _calendar_ids(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value if item)


def _location_from_config(name: str, config: dict) -> Location:
    google = config.get("google") or {}
    availability = _calendar_ids(google.get("availability_calendars"))
    booking = google.get("booking_calendar_id") or (availability[0] if availability else None)
    if not booking:
        raise ConfigurationError(f"Location {name} has no booking calendar")
    return Location(
        name=name,
        booking_calendar_id=booking,
        availability_calendars=availability or (booking,),
        address=config.get("address"),
    )


def _reminder_templates(value: Any) -> tuple[ReminderTemplate, ...]:
    if value is None:
        return DEFAULT_REMINDER_TEMPLATES
    templates = []
    for item in value:
        try:
            templates.append(ReminderTemplate(minutes_before=int(item["minutes_before"]), message=str(item["message"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid reminder template: {item!r}") from exc
    return tuple(templates)


def tenant_from_config(slug: str, config: dict) -> Tenant:
    """Build a Tenant from one entry of the ``tenants`` mapping."""
    if not isinstance(config, dict):
        raise ConfigurationError(f"Tenant {slug} config must be a mapping")

    timezone = config.get("timezone", "UTC")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Tenant {slug} has unknown timezone {timezone!r}") from exc

    strategy_value = str(config.get("availability_strategy", AvailabilityStrategy.PER_LOCATION.value)).upper()
    try:
        strategy = AvailabilityStrategy(strategy_value)
    except ValueError as exc:
        raise ConfigurationError(f"Tenant {slug} has unknown availability strategy {strategy_value!r}") from exc

    wassenger = config.get("wassenger") or {}
    meta = config.get("meta") or {}
    google = config.get("google") or {}
    locations = {
        name: _location_from_config(name, location_config or {})
        for name, location_config in (config.get("locations") or {}).items()
    }
    availability = _calendar_ids(google.get("availability_calendars"))

    return Tenant(
        id=str(config.get("id", slug)),
        slug=slug,
        timezone=timezone,
        device_id=str(wassenger.get("device_id", "")),
        availability_strategy=strategy,
        webhook_url=config.get("webhook_url"),
        availability_calendars=availability,
        booking_calendar_id=google.get("booking_calendar_id") or (availability[0] if availability else None),
        locations=locations,
        wassenger_api_key=wassenger.get("api_key"),
        meta_pixel_id=meta.get("pixel_id"),
        meta_access_token=meta.get("access_token"),
        google_service_account_file=google.get("service_account_file"),
        reminder_templates=_reminder_templates(config.get("reminder_templates")),
        booking_summary_template=config.get("booking_summary_template", "Evaluación Dental: {name}"),
        is_active=bool(config.get("is_active", True)),
    )


class YamlTenantStore:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.tenants_file)

    def _read(self) -> dict:
        try:
            with self.path.open(encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except FileNotFoundError:
            logger.warning("Tenants file not found", extra={"context": {"path": str(self.path)}})
            return {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid tenants file {self.path}: {exc}") from exc
        tenants = data.get("tenants") if isinstance(data, dict) else None
        return tenants if isinstance(tenants, dict) else {}

    async def _load(self) -> dict:
        return await asyncio.to_thread(self._read)

    async def get_tenant(self, slug: str) -> Optional[Tenant]:
        config = (await self._load()).get(slug)
        if config is None:
            return None
        tenant = tenant_from_config(slug, config)
        return tenant if tenant.is_active else None

    async def get_tenant_by_device_id(self, device_id: str) -> Optional[Tenant]:
        if not device_id:
            return None
        for slug, config in (await self._load()).items():
            wassenger = (config or {}).get("wassenger") or {}
            if str(wassenger.get("device_id", "")) == device_id:
                tenant = tenant_from_config(slug, config)
                return tenant if tenant.is_active else None
        return None
