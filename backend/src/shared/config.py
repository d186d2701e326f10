from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "Temporary PKI"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Bundle artifact paths (patterns when TMPPKI_TEMPORARY is set)
    TMPPKI_KEY_PATH: str = "/tmp/server.key"  # noqa: S108
    TMPPKI_CERT_PATH: str = "/tmp/server.crt"  # noqa: S108
    TMPPKI_CA_KEY_PATH: Optional[str] = "/tmp/tmppki-ca.key"  # noqa: S108
    TMPPKI_CA_CERT_PATH: Optional[str] = "/tmp/tmppki-ca.crt"  # noqa: S108

    # Leaf key generation
    TMPPKI_ALGORITHM: str = "rsa"
    TMPPKI_STRENGTH: Optional[int] = 128
    TMPPKI_WITH_CA: bool = False
    TMPPKI_TEMPORARY: bool = False

    # TLS server
    SERVER_HOST: str = "127.0.0.1"
    SERVER_PORT: int = 8443


settings = Settings()
