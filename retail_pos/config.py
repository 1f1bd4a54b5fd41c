from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix='RETAIL_POS_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    tax_rate: Decimal = Decimal('0.0875')
    default_product_page_size: int = 20
    default_customer_page_size: int = 10
    top_products_limit: int = 10
    local_timezone: str = 'UTC'

    session_cookie_name: str = 'retail_pos_session'
    session_ttl_minutes: int = 480
    session_cookie_secure: bool = False
    session_cookie_samesite: str = 'lax'

    cart_idle_ttl_minutes: int = 120
    audit_page_size: int = 50

    seed_demo_data: bool = True
    apply_post_checkout_hooks: bool = False
    loyalty_points_per_currency_unit: int = 1

    log_level: str = 'INFO'
    log_file: str | None = None
    log_max_bytes: int = 1048576
    log_backup_count: int = 3

    @property
    def log_level_normalized(self) -> str:
        level = self.log_level.strip().upper()
        if level not in {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            return 'INFO'
        return level


settings = Settings()
