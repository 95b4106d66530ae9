"""Configuration for the Scoreboard Tracker."""
from scoreboard_tracker.config.config import TrackerConfig, configure_logging

__all__ = ["TrackerConfig", "configure_logging"]
