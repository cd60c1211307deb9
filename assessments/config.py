"""Application settings loaded from the environment / .env file."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Assessment Scoring & Grading Service"

    # Database
    DATABASE_URL: str = "sqlite:///./assessments.db"
    SQL_ECHO: bool = False

    # Supervised assessment timing
    GRACE_PERIOD_SECONDS: int = 30  # network latency tolerance on expiry checks
    NEAR_EXPIRATION_RATIO: float = 0.1

    # Score distribution bucket width, in percent of max points
    DISTRIBUTION_BUCKET_PERCENT: int = 20

    # Weighted course grades are reported on a 0..GRADE_SCALE scale
    GRADE_SCALE: float = 20.0

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
