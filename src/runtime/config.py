# =============================================================================
# Settings - Process-wide Configuration
# =============================================================================
# Read once from the environment at cold start and passed explicitly to the
# components that need it. Variable names match the deployment environment.
# =============================================================================

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from src.runtime.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REGION = "ap-northeast-1"
DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_DISCORD_API_BASE = "https://discord.com/api/v10"

BACKEND_SQS = "sqs"
BACKEND_LAMBDA = "lambda"


def _get_env(env: Mapping[str, str], key: str, default: str = "") -> str:
    return (env.get(key) or default).strip()


def _get_env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = _get_env(env, key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


def _get_env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _get_env(env, key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable runtime configuration.

    Attributes:
        region: AWS region for clients
        timezone: Zone used when showing times to users
        ssm_path: SSM parameter path prefix holding secrets
        public_key: Discord application public key (hex), may come from SSM
        executor_function: Executor Lambda name/ARN (CMDFUNC)
        queue_url: Work queue URL (QUEUEURL)
        table_name: State table name (TABLENAME)
        work_queue_backend: "sqs" or "lambda"
        signature_tolerance_seconds: Accepted clock skew for signed requests
        sync_timeout_seconds: Budget for inline command handlers
        enqueue_attempts: Enqueue attempts before reporting failure
        discord_api_base: Discord REST base URL
        bot_token: Bot token for command sync, may come from SSM
        instance_id: Managed instance id, may come from SSM
        log_level: Root log level
    """
    region: str = DEFAULT_REGION
    timezone: str = DEFAULT_TIMEZONE
    ssm_path: str = ""
    public_key: str = ""
    executor_function: str = ""
    queue_url: str = ""
    table_name: str = ""
    work_queue_backend: str = BACKEND_SQS
    signature_tolerance_seconds: int = 300
    sync_timeout_seconds: float = 2.5
    enqueue_attempts: int = 2
    discord_api_base: str = DEFAULT_DISCORD_API_BASE
    bot_token: str = ""
    instance_id: str = ""
    log_level: str = "INFO"

    def ssm_parameter(self, name: str) -> str:
        """Full parameter name under the configured path."""
        if not self.ssm_path:
            raise ConfigurationError(f"SSMPATH is not set, cannot resolve parameter {name!r}")
        return f"{self.ssm_path.rstrip('/')}/{name}"

    def require(self, attribute: str, env_name: str) -> str:
        value = getattr(self, attribute)
        if not value:
            raise ConfigurationError(f"{env_name} is not configured")
        return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables."""
    env = os.environ if env is None else env

    executor_function = _get_env(env, "CMDFUNC")
    backend = _get_env(env, "WORK_QUEUE_BACKEND").lower()
    if not backend:
        backend = BACKEND_LAMBDA if executor_function else BACKEND_SQS
    if backend not in (BACKEND_SQS, BACKEND_LAMBDA):
        raise ConfigurationError(f"WORK_QUEUE_BACKEND must be 'sqs' or 'lambda', got {backend!r}")

    attempts = _get_env_int(env, "ENQUEUE_ATTEMPTS", 2)
    if attempts < 1:
        raise ConfigurationError("ENQUEUE_ATTEMPTS must be at least 1")

    settings = Settings(
        region=_get_env(env, "AWS_REGION", DEFAULT_REGION),
        timezone=_get_env(env, "TIMEZONE", DEFAULT_TIMEZONE),
        ssm_path=_get_env(env, "SSMPATH"),
        public_key=_get_env(env, "PUBKEY"),
        executor_function=executor_function,
        queue_url=_get_env(env, "QUEUEURL"),
        table_name=_get_env(env, "TABLENAME"),
        work_queue_backend=backend,
        signature_tolerance_seconds=_get_env_int(env, "SIGNATURE_TOLERANCE_SECONDS", 300),
        sync_timeout_seconds=_get_env_float(env, "SYNC_TIMEOUT_SECONDS", 2.5),
        enqueue_attempts=attempts,
        discord_api_base=_get_env(env, "DISCORD_API_BASE", DEFAULT_DISCORD_API_BASE).rstrip("/"),
        bot_token=_get_env(env, "BOT_TOKEN"),
        instance_id=_get_env(env, "INSTANCE_ID"),
        log_level=_get_env(env, "LOG_LEVEL", "INFO").upper(),
    )
    logger.debug(f"Loaded settings: region={settings.region} backend={settings.work_queue_backend} "
                 f"table={settings.table_name or '-'}")
    return settings
