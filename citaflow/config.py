from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    log_level: str = "INFO"
    debug: bool = False

    # Tenant store
    tenants_file: str = "tenants.yaml"

    # Inbound pipeline timings
    debounce_delay_seconds: float = 15.0
    handoff_timeout_seconds: float = 30 * 60
    lead_guard_ttl_seconds: float = 5 * 60
    ttl_sweep_interval_seconds: float = 5 * 60
    ttl_sweep_enabled: bool = True

    # Conversation markers stored in the messaging provider
    humano_label: str = "humano"
    lead_metadata_key: str = "capi_lead_enviado"

    # Upstream providers
    http_timeout_seconds: float = 15.0
    wassenger_api_url: str = "https://api.wassenger.com/v1"
    meta_graph_url: str = "https://graph.facebook.com"
    meta_api_version: str = "v18.0"
    google_calendar_api_url: str = "https://www.googleapis.com/calendar/v3"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
