"""Configuration module for the Scoreboard Tracker."""
import os
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional
import dotenv

# Load environment variables from .env file if present
dotenv.load_dotenv()

@dataclass
class TrackerConfig:
    """Configuration for ingestion and storage."""
    # Storage settings
    data_dir: str = "scoreboard_data"
    batch_size: int = 200
    score_chunk_size: int = 500

    # Query settings
    long_game_threshold: int = 1200  # Seconds after which a lost game counts as "long"

    # Logging settings
    log_level: int = logging.INFO
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None

    # Ingestion settings
    file_extension: str = ".lua"
    show_progress: bool = True

    @classmethod
    def from_env(cls, data_dir: Optional[str] = None) -> 'TrackerConfig':
        """Create a configuration from environment variables."""
        return cls(
            data_dir=data_dir or os.environ.get("SCOREBOARD_DATA_DIR", "scoreboard_data"),
            batch_size=int(os.environ.get("SCOREBOARD_BATCH_SIZE", "200")),
            score_chunk_size=int(os.environ.get("SCOREBOARD_SCORE_CHUNK_SIZE", "500")),
            long_game_threshold=int(os.environ.get("SCOREBOARD_LONG_GAME_THRESHOLD", "1200")),
            log_level=getattr(logging, os.environ.get("SCOREBOARD_LOG_LEVEL", "INFO")),
            log_format=os.environ.get("SCOREBOARD_LOG_FORMAT",
                               "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.environ.get("SCOREBOARD_LOG_FILE"),
            file_extension=os.environ.get("SCOREBOARD_FILE_EXTENSION", ".lua"),
            show_progress=os.environ.get("SCOREBOARD_SHOW_PROGRESS", "True").lower() == "true",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the configuration to a dictionary."""
        return {
            "data_dir": self.data_dir,
            "batch_size": self.batch_size,
            "score_chunk_size": self.score_chunk_size,
            "long_game_threshold": self.long_game_threshold,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "log_file": self.log_file,
            "file_extension": self.file_extension,
            "show_progress": self.show_progress,
        }


def configure_logging(config: TrackerConfig) -> None:
    """Configure logging based on the configuration."""
    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(config.log_format))
    handlers.append(console_handler)

    # File handler if log file specified
    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(logging.Formatter(config.log_format))
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(
        level=config.log_level,
        handlers=handlers,
        format=config.log_format,
        force=True,
    )
