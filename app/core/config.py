import json
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field

# Checagens solicitadas à API de verificação em toda submissão
DEFAULT_REQUIRED_CHECKS = [
    "ANNOTATION",
    "C2PA",
    "COMPRESSION_HEATMAP",
    "DEEPFAKE_2",
    "DEEPFAKE_3",
    "DEEPFAKE_4",
    "DEEPFAKE_5",
    "DEEPFAKE_6",
    "DEEPFAKE_7",
    "DEEPFAKE",
    "EOF_COUNT",
    "HANDWRITING",
    "INVOICE_DATE_ANOMALY_CHECK",
    "INVOICE_TOTAL_ANOMALY_CHECK",
    "SCREENSHOT",
    "SOFTWARE_EDITOR",
    "SOFTWARE_FINGERPRINT",
    "TIMESTAMP",
    "VENDOR_MISSING_FIELDS",
    "VENDOR_VALIDATION",
    "VISUAL_ANOMALY",
    "WATERMARK_CHECK",
]

class Settings(BaseSettings):
    # Configurações gerais
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Verification Portal API"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # CORS - definido como string para evitar problemas de parsing
    CORS_ORIGINS_STR: str = "http://localhost:5173,http://localhost:3000"

    @computed_field
    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Converte a string CORS_ORIGINS_STR em uma lista."""
        if not self.CORS_ORIGINS_STR:
            return ["http://localhost:5173", "http://localhost:3000"]
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    # Database
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "portal"
    POSTGRES_PASSWORD: str = "portal"
    POSTGRES_DB: str = "portal"
    DATABASE_URL: str | None = None  # Será carregado do .env

    @property
    def database_url(self) -> str:
        """
        Gera a URL do banco de dados se não for especificada.
        Certifica-se de usar o prefixo postgresql+asyncpg:// para conexões assíncronas.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis (rate-limit)
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str | None = None

    @property
    def rate_limit_storage_uri(self) -> str:
        if self.RATE_LIMIT_STORAGE_URI:
            return self.RATE_LIMIT_STORAGE_URI
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"

    # Auth
    SECRET_KEY: str | None = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ALGORITHM: str = "HS256"

    # API externa de classificação/verificação de documentos
    VERIFY_API_KEY: str = ""
    VERIFY_API_SECRET: str = ""
    VERIFY_TENANT_ALIAS: str = "truuthhiring"
    VERIFY_CLASSIFIER_URL: str = "https://api.au.truuth.id/document-management/v1/classify"
    VERIFY_SUBMISSIONS_BASE_URL: str = "https://submissions.api.au.truuth.id/verify-document/v1"
    VERIFY_SUBMIT_URL: str | None = None
    VERIFY_RESULT_URL: str | None = None
    VERIFY_REQUIRED_CHECKS_STR: str = ",".join(DEFAULT_REQUIRED_CHECKS)
    VERIFY_TIMEOUT_SECONDS: float | None = None  # None = sem timeout explícito

    @property
    def verify_submit_url(self) -> str:
        if self.VERIFY_SUBMIT_URL:
            return self.VERIFY_SUBMIT_URL
        return f"{self.VERIFY_SUBMISSIONS_BASE_URL}/tenants/{self.VERIFY_TENANT_ALIAS}/documents/submit"

    @property
    def verify_result_url(self) -> str:
        if self.VERIFY_RESULT_URL:
            return self.VERIFY_RESULT_URL
        return f"{self.VERIFY_SUBMISSIONS_BASE_URL}/tenants/{self.VERIFY_TENANT_ALIAS}/documents"

    @property
    def verify_required_checks(self) -> List[str]:
        """Aceita lista separada por vírgulas ou um array JSON."""
        raw = self.VERIFY_REQUIRED_CHECKS_STR.strip()
        if raw.startswith("["):
            return [str(check) for check in json.loads(raw)]
        return [check.strip() for check in raw.split(",") if check.strip()]

    # Upload
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    MAX_ID_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Currículos não têm exigência de compliance; quando False, uma falha na
    # submissão do currículo encerra o documento como DONE com status SKIPPED
    RESUME_VERIFICATION_REQUIRED: bool = False

    # Intervalo do polling de status no cliente
    STATUS_POLL_INTERVAL_SECONDS: float = 5.0

    # Inicialização
    RUN_MIGRATIONS: bool = True

    # Prometheus
    ENABLE_PROMETHEUS: bool = True

    # Configuração para carregar de arquivo .env
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

# Instância global para uso em toda a aplicação
settings = Settings()
