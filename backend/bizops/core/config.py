# bizops/core/config.py
import os
from dataclasses import dataclass
from urllib.parse import quote_plus

from dotenv import load_dotenv


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


class Settings:
    def __init__(self) -> None:
        # Only load .env for local/dev. In prod, env vars come from the service config.
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            load_dotenv()

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

        # ----------------------------
        # Database
        # ----------------------------
        self.DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
        self.DB_HOST = os.getenv("DB_HOST", "")
        self.DB_PORT = os.getenv("DB_PORT", "5432")
        self.DB_NAME = os.getenv("DB_NAME", "")
        self.DB_APP_USER = os.getenv("DB_APP_USER", "")
        self.DB_APP_PASSWORD = os.getenv("DB_APP_PASSWORD", "")
        self.DB_MIGRATOR_USER = os.getenv("DB_MIGRATOR_USER", "")
        self.DB_MIGRATOR_PASSWORD = os.getenv("DB_MIGRATOR_PASSWORD", "")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "require").strip().lower()

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS"))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # ----------------------------
        # Webhook senders
        # ----------------------------
        self.STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
        self.INVOICENINJA_WEBHOOK_SECRET = os.getenv("INVOICENINJA_WEBHOOK_SECRET", "")
        # Local testing only: skip signature checks. Refused in prod by _validate_prod().
        self.WEBHOOK_SIGNATURE_BYPASS = str_to_bool(os.getenv("WEBHOOK_SIGNATURE_BYPASS"), default=False)

        # ----------------------------
        # Admin / DLQ replay
        # ----------------------------
        self.ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")
        self.ENABLE_RATE_LIMITING = str_to_bool(os.getenv("ENABLE_RATE_LIMITING", "false"))
        self.ADMIN_RATE_LIMIT = os.getenv("ADMIN_RATE_LIMIT", "30/minute").strip() or "30/minute"

        # ----------------------------
        # Workflow automation (n8n)
        # ----------------------------
        self.N8N_WEBHOOK_URL = os.getenv("N8N_WEBHOOK_URL", "").strip()
        self.N8N_API_KEY = os.getenv("N8N_API_KEY", "")
        self.N8N_TIMEOUT_SECONDS = float(os.getenv("N8N_TIMEOUT_SECONDS", "5"))

        # Final: fail fast in prod
        self._validate_prod()

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.DATABASE_URL:
            if not self.DB_HOST:
                missing.append("DB_HOST")
            if not self.DB_NAME:
                missing.append("DB_NAME")
            if not self.DB_APP_USER:
                missing.append("DB_APP_USER")
            if not self.DB_APP_PASSWORD:
                missing.append("DB_APP_PASSWORD")
            if self.DB_SSLMODE != "require":
                raise RuntimeError("DB_SSLMODE must be 'require' in prod")

        if not self.STRIPE_WEBHOOK_SECRET:
            missing.append("STRIPE_WEBHOOK_SECRET")
        if not self.INVOICENINJA_WEBHOOK_SECRET:
            missing.append("INVOICENINJA_WEBHOOK_SECRET")
        if not self.ADMIN_API_KEY:
            missing.append("ADMIN_API_KEY")

        if self.WEBHOOK_SIGNATURE_BYPASS:
            raise RuntimeError("WEBHOOK_SIGNATURE_BYPASS must not be enabled in prod")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if self.N8N_WEBHOOK_URL and not self.N8N_WEBHOOK_URL.startswith("https://"):
            raise RuntimeError("N8N_WEBHOOK_URL should be https://... in prod")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    def _build_database_url(self, user: str, password: str) -> str:
        encoded_password = quote_plus(password)
        return (
            f"postgresql+psycopg2://{user}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?sslmode={self.DB_SSLMODE}"
        )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return self._build_database_url(self.DB_APP_USER, self.DB_APP_PASSWORD)

    @property
    def migrations_database_url(self) -> str:
        if self.DB_MIGRATOR_USER and self.DB_MIGRATOR_PASSWORD:
            return self._build_database_url(self.DB_MIGRATOR_USER, self.DB_MIGRATOR_PASSWORD)
        return self.database_url


settings = Settings()


@dataclass(frozen=True)
class WebhookConfig:
    """
    Secrets and switches the webhook core needs, captured once at startup.

    Services receive this object instead of reading `settings` so tests can inject
    their own secrets without touching process-global state.
    """

    environment: str
    stripe_webhook_secret: str
    invoiceninja_webhook_secret: str
    admin_api_key: str
    signature_bypass: bool = False
    n8n_webhook_url: str = ""
    n8n_api_key: str = ""
    n8n_timeout_seconds: float = 5.0

    @classmethod
    def from_settings(cls, source: Settings) -> "WebhookConfig":
        return cls(
            environment=source.ENV,
            stripe_webhook_secret=source.STRIPE_WEBHOOK_SECRET,
            invoiceninja_webhook_secret=source.INVOICENINJA_WEBHOOK_SECRET,
            admin_api_key=source.ADMIN_API_KEY,
            signature_bypass=source.WEBHOOK_SIGNATURE_BYPASS,
            n8n_webhook_url=source.N8N_WEBHOOK_URL,
            n8n_api_key=source.N8N_API_KEY,
            n8n_timeout_seconds=source.N8N_TIMEOUT_SECONDS,
        )

    @property
    def is_prod(self) -> bool:
        return self.environment == "prod"

    @property
    def allow_unsigned(self) -> bool:
        return self.signature_bypass and not self.is_prod
