from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("obra-invoice-intake", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_serialize: bool = Field(False, alias="LOG_SERIALIZE")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Tenant: RUT of the company that issues the invoices we ingest
    known_issuer_rut: str | None = Field("77.567.635-3", alias="KNOWN_ISSUER_RUT")

    # Supabase Storage (in-memory object storage is used when unset)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")
    storage_bucket: str = Field("invoices", alias="STORAGE_BUCKET")
    storage_timeout_seconds: float = Field(30.0, alias="STORAGE_TIMEOUT_SECONDS")

    # invoice_income persistence: "sqlite" or "memory"
    invoice_store: str = Field("sqlite", alias="INVOICE_STORE")
    database_path: str = Field("invoices.db", alias="DATABASE_PATH")

    # Extraction limits
    max_reasonable_amount: float = Field(100_000_000, alias="MAX_REASONABLE_AMOUNT")
    raw_text_max_length: int = Field(5000, alias="RAW_TEXT_MAX_LENGTH")

    # Verification rules
    verification_amount_tolerance: float = Field(1.0, alias="VERIFICATION_AMOUNT_TOLERANCE")

    # API Base URL (used by the intake folder watcher)
    api_base_url: str = Field("http://127.0.0.1:8000", alias="API_BASE_URL")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

settings = Settings()
