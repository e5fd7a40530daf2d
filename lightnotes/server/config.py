"""Configuration for the object-store endpoint."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Endpoint settings, read from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    lightnotes_token: str = ""

    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_bucket: str = "lightnotes"
    s3_prefix: str = ""

    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]
