# =============================================================================
# Dependency Injection Container
# =============================================================================
# Provides lazy-loaded AWS clients, adapters and secrets to handlers.
# Handlers receive Deps instead of creating their own clients.
# =============================================================================

import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.runtime.config import BACKEND_LAMBDA, Settings, load_settings
from src.runtime.discord_api import DiscordClient
from src.runtime.errors import ConfigurationError
from src.runtime.instances import Ec2InstanceController, InstanceController
from src.runtime.security import SignatureVerifier
from src.store.state_store import DynamoStateStore, StateStore
from src.workqueue.work_queue import LambdaWorkQueue, SqsWorkQueue, WorkQueue

logger = logging.getLogger(__name__)


@dataclass
class Deps:
    """
    Dependency injection container for handlers.

    All AWS clients are lazy-loaded on first access, so importing and
    constructing Deps needs no credentials. Any property can be replaced by
    plain assignment (tests, local CLI):

        deps = Deps(settings)
        deps.state_store = MemoryStateStore()

    Usage in a handler:
        def handle_status(interaction, deps):
            record = deps.state_store.get(deps.instance_id)
    """
    settings: Settings = field(default_factory=load_settings)

    @property
    def region(self) -> str:
        return self.settings.region

    # ==========================================================================
    # AWS Clients (lazy-loaded)
    # ==========================================================================

    @cached_property
    def dynamodb(self):
        """DynamoDB resource."""
        return boto3.resource("dynamodb", region_name=self.region)

    @cached_property
    def table(self):
        """DynamoDB state table."""
        return self.dynamodb.Table(self.settings.require("table_name", "TABLENAME"))

    @cached_property
    def sqs(self):
        return boto3.client("sqs", region_name=self.region)

    @cached_property
    def lambda_client(self):
        return boto3.client("lambda", region_name=self.region)

    @cached_property
    def ssm(self):
        return boto3.client("ssm", region_name=self.region)

    @cached_property
    def ec2(self):
        return boto3.client("ec2", region_name=self.region)

    # ==========================================================================
    # Adapters
    # ==========================================================================

    @cached_property
    def state_store(self) -> StateStore:
        return DynamoStateStore(self.table)

    @cached_property
    def work_queue(self) -> WorkQueue:
        if self.settings.work_queue_backend == BACKEND_LAMBDA:
            function_name = self.settings.require("executor_function", "CMDFUNC")
            return LambdaWorkQueue(self.lambda_client, function_name)
        return SqsWorkQueue(self.sqs, self.settings.require("queue_url", "QUEUEURL"))

    @cached_property
    def sqs_queue(self) -> SqsWorkQueue:
        """The SQS queue regardless of backend (executor daemon side)."""
        return SqsWorkQueue(self.sqs, self.settings.require("queue_url", "QUEUEURL"))

    @cached_property
    def discord(self) -> DiscordClient:
        return DiscordClient(api_base=self.settings.discord_api_base, bot_token=self.bot_token_or_empty)

    @cached_property
    def instances(self) -> InstanceController:
        return Ec2InstanceController(self.ec2)

    # ==========================================================================
    # Secrets (environment first, then SSM under SSMPATH)
    # ==========================================================================

    def get_parameter(self, name: str) -> str:
        """Read a (decrypted) parameter under the configured SSM path."""
        full_name = self.settings.ssm_parameter(name)
        try:
            response = self.ssm.get_parameter(Name=full_name, WithDecryption=True)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to read SSM parameter {full_name}: {e}")
            raise ConfigurationError(f"Cannot read parameter {full_name}", detail=str(e))
        value = response.get("Parameter", {}).get("Value", "")
        if not value:
            raise ConfigurationError(f"Parameter {full_name} is empty")
        return value

    @cached_property
    def public_key(self) -> str:
        """Discord application public key, fetched once per process."""
        return self.settings.public_key or self.get_parameter("publickey")

    @cached_property
    def instance_id(self) -> str:
        return self.settings.instance_id or self.get_parameter("instanceid")

    @cached_property
    def bot_token_or_empty(self) -> str:
        if self.settings.bot_token:
            return self.settings.bot_token
        if not self.settings.ssm_path:
            return ""
        try:
            return self.get_parameter("bottoken")
        except ConfigurationError:
            logger.warning("No bot token available; command sync is disabled")
            return ""

    @cached_property
    def verifier(self) -> SignatureVerifier:
        return SignatureVerifier(self.public_key, tolerance_seconds=self.settings.signature_tolerance_seconds)


def create_deps(settings: Optional[Settings] = None, **overrides: Any) -> Deps:
    """Create a new Deps instance, optionally pre-populating adapters."""
    deps = Deps(settings=settings or load_settings())
    for name, value in overrides.items():
        if not hasattr(type(deps), name):
            raise AttributeError(f"Deps has no dependency named {name!r}")
        setattr(deps, name, value)
    return deps
