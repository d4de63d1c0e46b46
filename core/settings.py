from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    storage_path: str = "./data/forecast_storage.json"
    goals_storage_key: str = "forecastGoals"

    # Enables the debug_selectedGoal override tier. Never on in production.
    debug_overrides: bool = False

    upload_delay_seconds: float = 1.5
    upload_failure_rate: float = 0.05

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="FORECAST_", env_file=".env", extra="ignore")


settings = Settings()
