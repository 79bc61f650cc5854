"""
Proctor Monitor Configuration Settings

Values can be overridden through PROCTOR_* environment variables or a .env file.
"""
from pydantic_settings import BaseSettings
from typing import Optional, Tuple


class Settings(BaseSettings):
    """Configuration for the camera proctoring monitor."""

    # Face landmark engine
    MODEL_ASSET_PATH: str = "face_landmarker.task"  # local path or http(s) URL
    MODEL_CACHE_DIR: str = ".cache/models"
    DELEGATE: str = "GPU"  # GPU or CPU, falls back to CPU if GPU init fails
    MIN_DETECTION_CONFIDENCE: float = 0.5
    MIN_PRESENCE_CONFIDENCE: float = 0.5
    MIN_TRACKING_CONFIDENCE: float = 0.5
    MAX_FACES: int = 2  # enough to tell "one" from "more than one"

    # Violation decisions
    VIOLATION_COOLDOWN_MS: float = 5000.0
    MISMATCH_THRESHOLD: float = 0.12
    SIGNATURE_WEIGHTS: Tuple[float, float, float] = (1.0, 1.5, 1.0)

    # Camera
    CAMERA_INDEX: int = 0
    FRAME_WIDTH: int = 640
    FRAME_HEIGHT: int = 480
    TARGET_FPS: int = 30
    MAX_READ_FAILURES: int = 30  # consecutive failed reads before the camera counts as lost

    # None keeps cancellation purely caller-driven
    STARTUP_TIMEOUT_SECONDS: Optional[float] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"
    LOG_MAX_BYTES: int = 5 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 3

    # Backend proctor log (optional)
    REPORT_BASE_URL: Optional[str] = None
    REPORT_TIMEOUT_SECONDS: float = 5.0

    class Config:
        env_prefix = "PROCTOR_"
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def frame_interval(self) -> float:
        """Seconds between loop iterations"""
        return 1.0 / max(self.TARGET_FPS, 1)


settings = Settings()
