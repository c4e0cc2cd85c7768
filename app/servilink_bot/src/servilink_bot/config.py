from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    bot_token: str = Field(..., alias="BOT_TOKEN")
    api_base_url: str = Field(
        default="https://codeo.site/api-servilink/api/v1", alias="SERVILINK_API_URL"
    )
    api_timeout_sec: float = Field(default=30.0, alias="SERVILINK_API_TIMEOUT")
    log_level: str = Field(default="INFO", alias="BOT_LOG_LEVEL")

    availability_window_days: int = Field(default=14, alias="AVAILABILITY_WINDOW_DAYS")
    max_dates_shown: int = Field(default=6, alias="MAX_DATES_SHOWN")
    service_duration_hours: int = Field(default=2, alias="SERVICE_DURATION_HOURS")
    tracking_poll_interval_sec: float = Field(default=30.0, alias="TRACKING_POLL_INTERVAL")
    # Buenos Aires (UTC-3)
    tz_offset_min: int = Field(default=-180, alias="BOT_TZ_OFFSET_MIN")

    payment_return_url: str = Field(
        default="https://codeo.site/servi-link/client/payment", alias="PAYMENT_RETURN_URL"
    )
    payment_notification_url: str = Field(
        default="https://codeo.site/servi-link/api/webhook/mercadopago",
        alias="PAYMENT_NOTIFICATION_URL",
    )

    search_latitude: float = Field(default=-34.6037, alias="SEARCH_LATITUDE")
    search_longitude: float = Field(default=-58.3816, alias="SEARCH_LONGITUDE")
    search_radius_km: int = Field(default=15, alias="SEARCH_RADIUS_KM")
    support_whatsapp: str = Field(default="+5491123456789", alias="SUPPORT_WHATSAPP")

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")
