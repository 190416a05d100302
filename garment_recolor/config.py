from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Garment Recolor API"
    env: str = "local"
    log_level: str = "INFO"

    openai_api_key: str | None = None
    edit_provider: str = "auto"  # auto|openai|passthrough
    edit_model: str = "dall-e-2"
    edit_max_retries: int = 3
    edit_backoff_seconds: float = 1.0
    edit_request_timeout_seconds: float = 120.0
    download_timeout_seconds: float = 60.0

    recolor_edit_sizes: list[int] = [1024, 1536]
    variant_edit_sizes: list[int] = [1024, 1536, 2048]
    garment_description: str = "sports jersey"
    max_variants: int = 4

    mask_white_threshold: int = 200
    geometry_max_changed_ratio: float = 0.005
    geometry_alpha_tolerance: int = 10
    color_target_max_distance: float = 50.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
