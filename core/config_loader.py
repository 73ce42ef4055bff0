import yaml
import os
from typing import Dict, Optional
from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    url: str
    pool_pre_ping: bool = True
    echo: bool = False


class RankingConfig(BaseModel):
    """
    Trust-ranked candidate list settings.
    """
    default_limit: int = 10
    # Rank (1-based) a non-preferred new lab may not be placed above. None disables the floor.
    new_provider_min_rank: Optional[int] = None


class QuoteConfig(BaseModel):
    default_rush_surcharge_percent: int = 20


class AssignmentConfig(BaseModel):
    """
    Bind and refusal propagation settings.

    Sibling refusal runs inside the bind transaction; these only govern the
    retry that follows when that step failed and the bind committed anyway.
    """
    refusal_retry_attempts: int = 3
    refusal_retry_wait_seconds: float = 0.5
    refusal_retry_max_wait_seconds: float = 5.0
    sweep_batch_size: int = 500


class NotificationChannelConfig(BaseModel):
    """Configuration for a single notification channel."""
    enabled: bool = True
    recipient: Optional[str] = None  # webhook URL for the webhook channel


class NotificationConfig(BaseModel):
    """
    Configuration for marketplace notifications.
    """
    enabled: bool = True

    # Channels to use; in_app is on unless disabled explicitly
    channels: Dict[str, NotificationChannelConfig] = Field(
        default_factory=lambda: {"in_app": NotificationChannelConfig()}
    )

    # Redis queue settings
    use_async_queue: bool = False
    redis_url: Optional[str] = None
    queue_name: str = "notifications"

    webhook_timeout_seconds: int = 10


class AppConfig(BaseModel):
    database: DatabaseConfig
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    quote: QuoteConfig = Field(default_factory=QuoteConfig)
    assignment: AssignmentConfig = Field(default_factory=AssignmentConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from root), try the repo root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Allow env var override for DB URL
    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        data.setdefault('database', {})
        data['database']['url'] = env_db_url

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        if not data.get('notifications'):
            data['notifications'] = {}
        data['notifications']['redis_url'] = env_redis_url

    # Allow env var override for the webhook target
    env_webhook_url = os.environ.get("NOTIFICATION_WEBHOOK_URL")
    if env_webhook_url:
        if not data.get('notifications'):
            data['notifications'] = {}
        channels = data['notifications'].setdefault('channels', {"in_app": {}})
        webhook = channels.get('webhook') or {}
        webhook['recipient'] = env_webhook_url
        channels['webhook'] = webhook

    return AppConfig(**data)
