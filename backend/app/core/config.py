# app/core/config.py
import os
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
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            # Load .env only for non-prod so prod can't be accidentally influenced by local files.
            load_dotenv()

        # ----------------------------
        # Database
        # ----------------------------
        self.DB_HOST = os.getenv("DB_HOST", "")
        self.DB_PORT = os.getenv("DB_PORT", "5432")
        self.DB_NAME = os.getenv("DB_NAME", "")
        self.DB_APP_USER = os.getenv("DB_APP_USER", "")
        self.DB_APP_PASSWORD = os.getenv("DB_APP_PASSWORD", "")
        self.DB_MIGRATOR_USER = os.getenv("DB_MIGRATOR_USER", "")
        self.DB_MIGRATOR_PASSWORD = os.getenv("DB_MIGRATOR_PASSWORD", "")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "require").strip().lower()
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS"))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # ----------------------------
        # Identity (tokens are issued by the identity provider, we only verify)
        # ----------------------------
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

        # Shared secret for internal callbacks (scanner verdicts, application pipeline)
        self.INTERNAL_SHARED_SECRET = os.getenv("INTERNAL_SHARED_SECRET", "")

        # ----------------------------
        # Storage (S3)
        # ----------------------------
        self.AWS_REGION = os.getenv("AWS_REGION", "")
        self.S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME", "")
        self.S3_PREFIX = os.getenv("S3_PREFIX", "").strip().strip("/")
        self.STORAGE_CONNECT_TIMEOUT_SECONDS = float(os.getenv("STORAGE_CONNECT_TIMEOUT_SECONDS", "2"))
        self.STORAGE_READ_TIMEOUT_SECONDS = float(os.getenv("STORAGE_READ_TIMEOUT_SECONDS", "5"))
        self.STORAGE_MAX_ATTEMPTS = int(os.getenv("STORAGE_MAX_ATTEMPTS", "2"))

        # ----------------------------
        # Uploads
        # ----------------------------
        self.MAX_RESUME_BYTES = int(os.getenv("MAX_RESUME_BYTES", str(10 * 1024 * 1024)))
        self.DAILY_UPLOAD_QUOTA = int(os.getenv("DAILY_UPLOAD_QUOTA", "20"))
        self.UPLOAD_QUOTA_TIMEZONE = os.getenv("UPLOAD_QUOTA_TIMEZONE", "UTC")
        self.UPLOAD_TOKEN_TTL_SECONDS = min(int(os.getenv("UPLOAD_TOKEN_TTL_SECONDS", "1800")), 1800)
        # sql | dynamodb
        self.UPLOAD_TOKEN_BACKEND = os.getenv("UPLOAD_TOKEN_BACKEND", "sql").strip().lower()
        self.DDB_UPLOAD_TOKEN_TABLE = os.getenv("DDB_UPLOAD_TOKEN_TABLE", "")
        # No scanner wired up (local dev): mark new resumes clean on confirmation.
        self.SCAN_AUTO_CLEAN = str_to_bool(os.getenv("SCAN_AUTO_CLEAN"), default=False)

        # ----------------------------
        # Signed links / access limits
        # ----------------------------
        self.COMPANY_LINK_TTL_SECONDS = int(os.getenv("COMPANY_LINK_TTL_SECONDS", "300"))
        self.OWNER_LINK_TTL_SECONDS = int(os.getenv("OWNER_LINK_TTL_SECONDS", "3600"))
        self.ACCESS_RATE_LIMIT_MAX = int(os.getenv("ACCESS_RATE_LIMIT_MAX", "50"))
        self.ACCESS_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("ACCESS_RATE_LIMIT_WINDOW_SECONDS", "3600"))
        # log | counter
        self.ACCESS_RATE_LIMIT_BACKEND = os.getenv("ACCESS_RATE_LIMIT_BACKEND", "log").strip().lower()

        # Route-level throttles (per user, fixed window, DynamoDB backed)
        self.RATE_LIMIT_ENABLED = str_to_bool(os.getenv("RATE_LIMIT_ENABLED"), default=False)
        self.DDB_RATE_LIMIT_TABLE = os.getenv("DDB_RATE_LIMIT_TABLE", "")
        self.RATE_LIMIT_DEFAULT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_DEFAULT_MAX_REQUESTS", "20"))
        self.RATE_LIMIT_DEFAULT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_DEFAULT_WINDOW_SECONDS", "60"))

        # ----------------------------
        # Stats / retention / worker
        # ----------------------------
        self.STATS_TASK_MAX_RETRIES = int(os.getenv("STATS_TASK_MAX_RETRIES", "2"))
        self.STATS_TASK_BACKOFF_SECONDS = int(os.getenv("STATS_TASK_BACKOFF_SECONDS", "1"))
        self.ACCESS_LOG_RETENTION_DAYS = int(os.getenv("ACCESS_LOG_RETENTION_DAYS", "90"))
        self.UPLOAD_TOKEN_SWEEP_SECONDS = int(os.getenv("UPLOAD_TOKEN_SWEEP_SECONDS", "300"))
        self.STATS_SQS_QUEUE_URL = os.getenv("STATS_SQS_QUEUE_URL", "")

        self._validate_prod()

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.JWT_SECRET:
            missing.append("JWT_SECRET")
        if not self.DB_HOST:
            missing.append("DB_HOST")
        if not self.DB_NAME:
            missing.append("DB_NAME")
        if not self.DB_APP_USER:
            missing.append("DB_APP_USER")
        if not self.DB_APP_PASSWORD:
            missing.append("DB_APP_PASSWORD")
        if not self.S3_BUCKET_NAME:
            missing.append("S3_BUCKET_NAME")
        if not self.INTERNAL_SHARED_SECRET:
            missing.append("INTERNAL_SHARED_SECRET")
        if self.UPLOAD_TOKEN_BACKEND == "dynamodb" and not self.DDB_UPLOAD_TOKEN_TABLE:
            missing.append("DDB_UPLOAD_TOKEN_TABLE")

        if self.DB_SSLMODE != "require":
            raise RuntimeError("DB_SSLMODE must be 'require' in prod")

        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if self.SCAN_AUTO_CLEAN:
            raise RuntimeError("SCAN_AUTO_CLEAN must not be enabled in prod")

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
        return self._build_database_url(self.DB_APP_USER, self.DB_APP_PASSWORD)

    @property
    def migrations_database_url(self) -> str:
        return self._build_database_url(self.DB_MIGRATOR_USER, self.DB_MIGRATOR_PASSWORD)


settings = Settings()


def require_jwt_secret() -> None:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set")
