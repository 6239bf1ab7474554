from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    osrm_url: str = "http://osrm:5000"
    request_timeout_s: float = 5.0
    snap_timeout_s: float = 3.0

    cache_max_size: int = 100
    cache_cleanup_interval_s: float = 600.0

    snap_batch_size: int = 3
    snap_batch_delay_s: float = 0.05  # courtesy throttle between snap batches
    attempt_delay_s: float = 0.03

    fallback_enabled: bool = True
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_prefix": "MAKEMYWAY_"}


settings = Settings()
