from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # databridge_db: raw orders, inventory snapshots, sync jobs, marketplace config
    operational_database_url: str = "postgresql+psycopg://postgres@localhost:5432/databridge_db"
    # pricelab_db: sku_master (read-only) and the sales_data / fba_inventory projections
    shared_database_url: str = "postgresql+psycopg://postgres@localhost:5432/pricelab_db"
    db_pool_size: int = 15
    shared_db_pool_size: int = 5
    db_pool_timeout: float = 5.0

    spapi_lwa_token_url: str = "https://api.amazon.com/auth/o2/token"
    spapi_endpoint_na: str = "https://sellingpartnerapi-na.amazon.com"
    spapi_endpoint_eu: str = "https://sellingpartnerapi-eu.amazon.com"
    spapi_endpoint_fe: str = "https://sellingpartnerapi-fe.amazon.com"
    spapi_request_timeout: float = 30.0
    spapi_download_timeout: float = 60.0
    spapi_retry_count: int = 3  # tenacity attempts for transient HTTP failures
    spapi_client_cache_ttl: int = 1800

    sku_cache_ttl: int = 3600

    # Pacing between vendor calls (seconds)
    inventory_group_delay: float = 2.0
    sales_group_delay: float = 5.0
    backfill_month_delay: float = 5.0

    # Report polling: delay = min(base + step * attempt, max)
    report_poll_max_attempts: int = 30
    report_poll_base_delay: float = 10.0
    report_poll_step_delay: float = 5.0
    report_poll_max_delay: float = 60.0

    write_batch_size: int = 500
    sales_overlap_days: int = 2
    backfill_default_months: int = 13

    scheduler_enabled: bool = True
    sync_inventory_cron: str = "0 */4 * * *"
    sync_sales_cron: str = "0 3 * * *"

    @field_validator("operational_database_url", "shared_database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if v and not v.startswith("postgresql"):
            raise ValueError("DB URL은 'postgresql'로 시작해야 합니다.")
        return v

    @field_validator("spapi_lwa_token_url", "spapi_endpoint_na", "spapi_endpoint_eu", "spapi_endpoint_fe")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL은 'http://' 또는 'https://'로 시작해야 합니다.")
        return v

    @field_validator("inventory_group_delay", "sales_group_delay", "backfill_month_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("대기 시간은 0 이상이어야 합니다.")
        return v

    @field_validator("write_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 5000:
            raise ValueError("write_batch_size는 1에서 5000 사이여야 합니다.")
        return v

    @field_validator("report_poll_max_attempts")
    @classmethod
    def validate_poll_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("report_poll_max_attempts는 1 이상이어야 합니다.")
        return v

    def endpoint_for_region(self, region: str) -> str:
        endpoints = {
            "NA": self.spapi_endpoint_na,
            "EU": self.spapi_endpoint_eu,
            "FE": self.spapi_endpoint_fe,
        }
        try:
            return endpoints[region.upper()]
        except KeyError:
            raise ValueError(f"Unknown SP-API region: {region}") from None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
