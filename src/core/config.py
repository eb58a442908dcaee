from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Bulk Incident Intake"
    LOG_LEVEL: str = "DEBUG"
    ENVIRONMENT: str = "development"

    # Reporting API (media upload, report creation, road lookup)
    REPORTING_API_URL: str = "http://localhost:8787"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Drafts
    DRAFT_PATH: str = ".drafts/bulk-upload-draft.json"
    PREVIEW_DIR: str = ""  # empty -> system temp dir

    # Grouping
    GROUPING_RADIUS_M: float = 50.0
    MAX_PHOTOS_PER_INCIDENT: int = 5

    # Submission
    SUBMIT_CONCURRENCY: int = 1

    # EXIF timestamps without OffsetTime are read in this zone (Asia/Colombo)
    EXIF_DEFAULT_UTC_OFFSET_MINUTES: int = 330

    class Config:
        env_file = ".env"

configs = Settings()
