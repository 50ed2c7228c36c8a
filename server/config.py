"""
Centralized configuration for the UNO room server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.rules.hand_size)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class RuleDefaults:
    """Table rules shared by every room."""
    min_players: int = 2
    max_players: int = 4
    hand_size: int = 7
    # Cards drawn for reaching one card without calling it (0 disables)
    missed_call_penalty: int = 0
    history_length: int = 20


@dataclass
class CPUSettings:
    """Pacing for automatic opponents (seconds)."""
    turn_delay: float = 1.0
    post_action_pause: float = 0.5


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Room settings
    ROOM_CODE_LENGTH: int = 6
    MAX_NAME_LENGTH: int = 20
    MAX_CPU_PER_ROOM: int = 3

    rules: RuleDefaults = field(default_factory=RuleDefaults)
    cpu: CPUSettings = field(default_factory=CPUSettings)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 6),
            MAX_NAME_LENGTH=get_env_int("MAX_NAME_LENGTH", 20),
            MAX_CPU_PER_ROOM=get_env_int("MAX_CPU_PER_ROOM", 3),
            rules=RuleDefaults(
                min_players=get_env_int("MIN_PLAYERS", 2),
                max_players=get_env_int("MAX_PLAYERS", 4),
                hand_size=get_env_int("HAND_SIZE", 7),
                missed_call_penalty=get_env_int("MISSED_CALL_PENALTY", 0),
                history_length=get_env_int("HISTORY_LENGTH", 20),
            ),
            cpu=CPUSettings(
                turn_delay=get_env_float("CPU_TURN_DELAY", 1.0),
                post_action_pause=get_env_float("CPU_POST_ACTION_PAUSE", 0.5),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
