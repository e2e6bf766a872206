from typing import Optional


class CitaflowError(Exception):
    """Base error for the inbound pipeline and booking engine."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TenantNotFound(CitaflowError):
    code = "tenant_not_found"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Tenant {identifier} not found")


class LocationNotFound(CitaflowError):
    code = "location_not_found"

    def __init__(self, location: str, tenant_slug: str):
        self.location = location
        self.tenant_slug = tenant_slug
        super().__init__(f"Location (sede) '{location}' not found for tenant {tenant_slug}")


class UpstreamProviderError(CitaflowError):
    """Transport or non-2xx failure from the calendar, messaging or ad-conversion API."""

    code = "upstream_error"

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        detail = f"{provider} request failed"
        if status_code is not None:
            detail += f" ({status_code})"
        super().__init__(f"{detail}: {message}")


class ConflictError(CitaflowError):
    code = "conflict"

    def __init__(self, message: str = "Slot no longer available (Conflict detected)", conflicts=None):
        self.conflicts = list(conflicts or [])
        super().__init__(message)


class ConfigurationError(CitaflowError):
    code = "configuration_error"
