from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "LAMR Medical Records"
    VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-me-in-production-use-strong-random-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    DATABASE_URL: str = "sqlite:///./lamr.db"

    # bcrypt work factor; tests drop this to the minimum of 4
    BCRYPT_ROUNDS: int = 12

    # QR lookup
    QR_CODE_BASE_URL: Optional[str] = None
    QR_CODE_PREFIX: str = "LAMR"
    QR_RECORD_SUMMARY_LIMIT: int = 5

    # Human-readable patient numbers: PA000001, PA000002, ...
    PATIENT_ID_PREFIX: str = "PA"
    PATIENT_ID_DIGITS: int = 6

    SEED_DEMO_DATA: bool = True
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
