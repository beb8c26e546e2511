"""
Application configuration
"""
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import List, Optional


BACKEND_DIR = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """Application settings"""
    
    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    
    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    
    # Job Processing
    OUTPUT_DIR: Optional[str] = None  # defaults to <backend>/output
    MAX_CONCURRENT_JOBS: int = 3
    JOB_RETENTION_SECONDS: int = 1800  # 30 minutes
    
    # Media tool
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    MEDIA_TOOL_WORKERS: int = 4
    
    # Segmenting
    DEFAULT_SEGMENT_DURATION: float = 30.0
    CUT_START_OFFSET: float = 0.1  # seconds skipped at each segment start
    CUT_KEYFRAME_INTERVAL: int = 30  # frames
    
    # Encoding
    VIDEO_PRESET: str = "fast"
    VIDEO_CRF: int = 23
    TARGET_WIDTH: int = 720
    TARGET_HEIGHT: int = 1280
    TARGET_FPS: int = 30
    TARGET_AUDIO_SAMPLE_RATE: int = 44100
    
    # Subtitles
    DEFAULT_SUBTITLE_PATH: str = ""
    DEFAULT_SUBTITLE_STYLE: str = "default"
    SUBTITLE_FONT_NAME: str = "Arial"
    
    @property
    def output_root(self) -> Path:
        """Root directory holding one tree per job"""
        if self.OUTPUT_DIR:
            return Path(self.OUTPUT_DIR)
        return BACKEND_DIR / "output"
    
    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
