"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Public base URL used for permalinks in notification bodies
    SERVER_URL: str = "http://localhost:8000"

    # Inbound mailbox (local@domain). Reply and unsubscribe addresses are
    # derived from it with plus-addressing; empty disables both.
    MAIL_INBOX_ADDRESS: str = ""

    # Domain part of generated thread references (<uuid>@<domain>)
    MAIL_THREADING_DOMAIN: str = "notifier"

    # Internal endpoints (inbound mail hook, watch administration)
    INTERNAL_SECRET: str = ""

    # Number of in-process lock stripes serializing events per work item
    NOTIFICATION_LOCK_STRIPES: int = 64

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def mail_inbox_parts(self) -> tuple[str, str] | None:
        """Returns (local, domain) of MAIL_INBOX_ADDRESS, or None when unset/invalid."""
        address = self.MAIL_INBOX_ADDRESS.strip().lower()
        if not address or address.count("@") != 1:
            return None
        local, domain = address.split("@")
        if not local or not domain:
            return None
        return local, domain

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
