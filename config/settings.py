import os
from pathlib import Path
from dotenv import load_dotenv
from typing import Optional

# Load environment variables
load_dotenv()

class Settings:
    """Centralized configuration - all settings controllable from environment"""

    # =================== CORE APPLICATION ===================
    APP_NAME: str = os.getenv("APP_NAME", "Deal Signal Engine")
    APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # =================== API CONFIGURATION ===================
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_PREFIX: str = os.getenv("API_PREFIX", "/api/v1")
    CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # =================== DEAL STORE ===================
    DEAL_STORE: str = os.getenv("DEAL_STORE", "memory").lower()
    DEAL_DATA_PATH: Optional[str] = os.getenv("DEAL_DATA_PATH")

    # Firestore
    FIREBASE_PROJECT_ID: Optional[str] = os.getenv("FIREBASE_PROJECT_ID")
    FIREBASE_CLIENT_EMAIL: Optional[str] = os.getenv("FIREBASE_CLIENT_EMAIL")
    FIREBASE_PRIVATE_KEY: Optional[str] = os.getenv("FIREBASE_PRIVATE_KEY")
    FIREBASE_CREDENTIALS_PATH: Optional[str] = os.getenv("FIREBASE_CREDENTIALS_PATH")

    # =================== FETCH BOUNDS ===================
    ACTION_LOG_LIMIT: int = int(os.getenv("ACTION_LOG_LIMIT", "50"))
    EMAIL_LIMIT: int = int(os.getenv("EMAIL_LIMIT", "100"))
    STAGE_HISTORY_LIMIT: int = int(os.getenv("STAGE_HISTORY_LIMIT", "10"))
    STORE_READ_TIMEOUT_SECONDS: float = float(os.getenv("STORE_READ_TIMEOUT_SECONDS", "10"))

    # =================== CACHING ===================
    CACHE_ENABLED: bool = os.getenv("CACHE_ENABLED", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    CACHE_TTL: int = int(os.getenv("CACHE_TTL", "3600"))
    SUMMARY_CACHE_TTL: int = int(os.getenv("SUMMARY_CACHE_TTL", "900"))

    # =================== LOGGING ===================
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "simple")  # structured or simple
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE")

    def __init__(self):
        """Initialize settings and create required directories"""
        self._create_directories()
        self._validate_settings()

    def _create_directories(self):
        """Create required directories"""
        if self.LOG_FILE:
            Path(self.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)

    def _validate_settings(self):
        """Validate required settings based on configuration"""
        errors = []

        # Validate deal store backend
        if self.DEAL_STORE not in ("memory", "firestore"):
            errors.append(f"Unsupported deal store: {self.DEAL_STORE}")
        elif self.DEAL_STORE == "firestore":
            if not self.FIREBASE_CREDENTIALS_PATH and not all([
                self.FIREBASE_PROJECT_ID, self.FIREBASE_CLIENT_EMAIL, self.FIREBASE_PRIVATE_KEY
            ]):
                errors.append("Firestore configuration incomplete")

        # Validate seed data path for the in-memory store
        if self.DEAL_DATA_PATH and not Path(self.DEAL_DATA_PATH).exists():
            errors.append(f"Data file not found: {self.DEAL_DATA_PATH}")

        # Validate fetch bounds
        for name in ("ACTION_LOG_LIMIT", "EMAIL_LIMIT", "STAGE_HISTORY_LIMIT"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        if self.STORE_READ_TIMEOUT_SECONDS <= 0:
            errors.append("STORE_READ_TIMEOUT_SECONDS must be positive")

        if self.LOG_FORMAT not in ("structured", "simple"):
            errors.append(f"Unsupported log format: {self.LOG_FORMAT}")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    def get_firestore_config(self) -> dict:
        """Get Firestore credential configuration"""
        if self.FIREBASE_CREDENTIALS_PATH:
            return {"credentials_path": self.FIREBASE_CREDENTIALS_PATH}

        return {
            "project_id": self.FIREBASE_PROJECT_ID,
            "client_email": self.FIREBASE_CLIENT_EMAIL,
            "private_key": self.FIREBASE_PRIVATE_KEY
        }

    def get_fetch_limits(self) -> dict:
        """Get bounded read sizes for the auxiliary collections"""
        return {
            "action_logs": self.ACTION_LOG_LIMIT,
            "emails": self.EMAIL_LIMIT,
            "stage_history": self.STAGE_HISTORY_LIMIT
        }

# Global settings instance
settings = Settings()
