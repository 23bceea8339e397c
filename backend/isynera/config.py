"""
Application configuration loaded from environment variables.

Supports switching between local and cloud PostgreSQL via DATABASE_MODE,
or an explicit DATABASE_URL (used by the test suite with sqlite).
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from backend directory
backend_dir = Path(__file__).parent.parent
load_dotenv(backend_dir / ".env")


class Config:
    """Application configuration."""

    # Flask settings
    DEBUG = os.getenv("FLASK_DEBUG", "0") == "1"
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    PORT = int(os.getenv("PORT", "5000"))

    # Environment mode: "local" or "cloud"
    DATABASE_MODE = os.getenv("DATABASE_MODE", "local")
    DATABASE_URL = os.getenv("DATABASE_URL", "")

    # PostgreSQL - Local
    POSTGRES_HOST_LOCAL = os.getenv("POSTGRES_HOST_LOCAL", "localhost")
    POSTGRES_PORT_LOCAL = os.getenv("POSTGRES_PORT_LOCAL", "5432")
    POSTGRES_DB_LOCAL = os.getenv("POSTGRES_DB_LOCAL", "isynera")
    POSTGRES_USER_LOCAL = os.getenv("POSTGRES_USER_LOCAL", "postgres")
    POSTGRES_PASSWORD_LOCAL = os.getenv("POSTGRES_PASSWORD_LOCAL", "")

    # PostgreSQL - Cloud (GCP Cloud SQL)
    POSTGRES_HOST_CLOUD = os.getenv("POSTGRES_HOST_CLOUD", "")
    POSTGRES_PORT_CLOUD = os.getenv("POSTGRES_PORT_CLOUD", "5432")
    POSTGRES_DB_CLOUD = os.getenv("POSTGRES_DB_CLOUD", "isynera")
    POSTGRES_USER_CLOUD = os.getenv("POSTGRES_USER_CLOUD", "postgres")
    POSTGRES_PASSWORD_CLOUD = os.getenv("POSTGRES_PASSWORD_CLOUD", "")

    # Auth
    JWT_SECRET = os.getenv("JWT_SECRET", "isynera-secret-key-change-in-production")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")

    # LLM providers
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1")
    OPENAI_SOAP_MODEL = os.getenv("OPENAI_SOAP_MODEL", "gpt-4o")
    OPENAI_TRANSCRIBE_MODEL = os.getenv("OPENAI_TRANSCRIBE_MODEL", "whisper-1")
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
    ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

    # Email (SendGrid SMTP relay) and eFax gateway
    SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.sendgrid.net")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME", "apikey")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "healthcare@isynera.com")
    EFAX_GATEWAY_DOMAIN = os.getenv("EFAX_GATEWAY_DOMAIN", "efax.gateway.local")

    # Eligibility clearinghouse
    AVAILITY_API_KEY = os.getenv("AVAILITY_API_KEY", "")
    AVAILITY_API_URL = os.getenv("AVAILITY_API_URL", "https://api.availity.com/availity/v1")
    ELIGIBILITY_TIMEOUT_SECONDS = float(os.getenv("ELIGIBILITY_TIMEOUT_SECONDS", "15"))

    # Google Vision OCR for image documents
    GOOGLE_VISION_API_KEY = os.getenv("GOOGLE_VISION_API_KEY", "")
    GOOGLE_VISION_API_URL = os.getenv("GOOGLE_VISION_API_URL", "https://vision.googleapis.com/v1/images:annotate")
    OCR_TIMEOUT_SECONDS = float(os.getenv("OCR_TIMEOUT_SECONDS", "30"))

    # Documents
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", str(backend_dir / "uploads"))
    MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024)))

    # Transcription session cache
    TRANSCRIPTION_CACHE_TTL_SECONDS = int(os.getenv("TRANSCRIPTION_CACHE_TTL_SECONDS", "3600"))
    TRANSCRIPTION_CACHE_MAX_SESSIONS = int(os.getenv("TRANSCRIPTION_CACHE_MAX_SESSIONS", "500"))

    # Firestore / GCP
    GCP_CREDENTIALS_PATH = os.getenv("GCP_CREDENTIALS_PATH", "./gcp-credentials.json")
    GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "")
    FIRESTORE_DATABASE_LOCAL = os.getenv("FIRESTORE_DATABASE_LOCAL", "isynera-dev")
    FIRESTORE_DATABASE_CLOUD = os.getenv("FIRESTORE_DATABASE_CLOUD", "(default)")
    ENABLE_FIRESTORE = os.getenv("ENABLE_FIRESTORE", "false").lower() == "true"

    @classmethod
    def get_database_url(cls) -> str:
        """Build the database URL from DATABASE_URL or DATABASE_MODE."""
        if cls.DATABASE_URL:
            return cls.DATABASE_URL

        if cls.DATABASE_MODE == "cloud":
            host = cls.POSTGRES_HOST_CLOUD
            port = cls.POSTGRES_PORT_CLOUD
            db = cls.POSTGRES_DB_CLOUD
            user = cls.POSTGRES_USER_CLOUD
            password = cls.POSTGRES_PASSWORD_CLOUD
            mode_label = "CLOUD"
        else:
            host = cls.POSTGRES_HOST_LOCAL
            port = cls.POSTGRES_PORT_LOCAL
            db = cls.POSTGRES_DB_LOCAL
            user = cls.POSTGRES_USER_LOCAL
            password = cls.POSTGRES_PASSWORD_LOCAL
            mode_label = "LOCAL"

        if password:
            url = f"postgresql://{user}:{password}@{host}:{port}/{db}"
        else:
            url = f"postgresql://{user}@{host}:{port}/{db}"

        print(f"[Config] PostgreSQL: {mode_label} ({host})")
        return url

    @classmethod
    def get_firestore_database(cls) -> str:
        """Get Firestore database ID based on DATABASE_MODE."""
        if cls.DATABASE_MODE == "cloud":
            db = cls.FIRESTORE_DATABASE_CLOUD
            mode_label = "CLOUD"
        else:
            db = cls.FIRESTORE_DATABASE_LOCAL
            mode_label = "LOCAL"

        print(f"[Config] Firestore: {mode_label} ({db})")
        return db


# Singleton instance
config = Config()
