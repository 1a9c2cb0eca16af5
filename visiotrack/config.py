"""Application configuration using Pydantic Settings."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "VisioTrack Attendance"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "visiotrack"
    # Requires a replica set; without it bulk writes roll back by compensating delete
    mongodb_use_transactions: bool = False

    # JWT (verification only; tokens are issued by the auth service)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Firebase (FCM)
    firebase_credentials_path: str = ""

    # Seed (optional initial admin; its id is the JWT subject the auth service must issue)
    seed_admin_email: str = ""
    seed_admin_name: str = "VisioTrack Admin"

    # Review workflow
    review_comment_max_length: int = 2000

    # CORS (comma-separated origins, e.g. "https://visiotrack.example.edu")
    cors_origins: str = "http://localhost:5173"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to the auth service's signing secret when DEBUG is not enabled."
                )
        return self


settings = Settings()
