"""
Structured logging configuration for the application.
"""
import structlog
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def configure_logging(environment: str = "development"):
    """Configure structured logging based on environment."""

    level = logging.INFO if environment == "production" else logging.DEBUG

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if environment == "production" else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def get_logger(name: str = None):
    """Get a configured logger instance."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GameActivityLogger:
    """Logger for player activity in games."""

    def __init__(self):
        self.logger = get_logger("activity")

    def log_game_created(self, game_id: str, player_id: str, map_type: str):
        self.logger.info(
            "game_created",
            game_id=game_id,
            player_id=player_id,
            map_type=map_type,
            timestamp=_now(),
        )

    def log_player_joined(self, game_id: str, player_id: str, started: bool):
        self.logger.info(
            "player_joined",
            game_id=game_id,
            player_id=player_id,
            started=started,
            timestamp=_now(),
        )

    def log_game_action(
        self,
        game_id: str,
        player_id: str,
        action: str,
        phase: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Log an applied game action."""
        self.logger.info(
            "game_action",
            game_id=game_id,
            player_id=player_id,
            action=action,
            phase=phase,
            details=details or {},
            timestamp=_now(),
        )

    def log_action_rejected(
        self,
        game_id: str,
        player_id: str,
        action: str,
        code: str,
        message: str,
    ):
        """Log an action the rules refused."""
        self.logger.info(
            "game_action_rejected",
            game_id=game_id,
            player_id=player_id,
            action=action,
            code=code,
            message=message,
            timestamp=_now(),
        )

    def log_stream_event(self, event_type: str, game_id: str, details: Optional[Dict[str, Any]] = None):
        """Log an event-stream connect/disconnect."""
        self.logger.info(
            "stream_event",
            event_type=event_type,
            game_id=game_id,
            details=details or {},
            timestamp=_now(),
        )


# Global activity logger instance
activity_logger = GameActivityLogger()
