import tempfile
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "Cluster Certificate Manager"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Key material store
    DATABASE_URL: str = "sqlite:///./certmanager.db"
    GLOBAL_NAMESPACE: str = "global"

    # Certificate authority
    CA_SECRET_NAME: str = "ca-secret"
    CA_COMMON_NAME: str = "Cluster Certificate Manager CA"
    # Optional pre-existing CA pair imported on first bootstrap
    CA_KEY_PATH: Optional[str] = None
    CA_CERT_PATH: Optional[str] = None

    # Issuance
    CERT_DIR: str = tempfile.gettempdir()
    CSR_ORGANIZATION: str = "io.enmasse"
    CERT_VALIDITY_DAYS: int = 11000

    # Signing engine
    SIGNING_ENGINE: str = "openssl"  # "openssl" or "cryptography"
    OPENSSL_BINARY: str = "openssl"
    SIGNING_TIMEOUT_SECONDS: float = 60.0

    # Observability
    METRICS_CONSOLE_EXPORT: bool = True


settings = Settings()
