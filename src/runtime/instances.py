# =============================================================================
# Managed Instance Capability
# =============================================================================
# Commands that start or inspect the managed game server go through this
# interface; the EC2 implementation is the one the deployment grants.
# =============================================================================

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from src.runtime.errors import InstanceError

logger = logging.getLogger(__name__)


class InstanceState:
    """Lifecycle states recorded for the managed instance."""
    STOPPED = "stopped"
    START_PENDING = "startPending"
    RUNNING = "running"
    STOP_PENDING = "stopPending"


# A start claim blocks concurrent starts for this long
CLAIM_TTL_SECONDS = 5 * 60
# A heartbeat keeps the running state fresh for this long
HEARTBEAT_TTL_SECONDS = 4 * 60


@dataclass(frozen=True)
class InstanceInfo:
    instance_id: str
    state: str
    public_ip: Optional[str] = None


class InstanceController(ABC):
    """Start / describe a single managed instance."""

    @abstractmethod
    def start(self, instance_id: str) -> str:
        """Request start. Returns the instance's current state name."""

    @abstractmethod
    def describe(self, instance_id: str) -> InstanceInfo:
        """Current state and public IP."""


class Ec2InstanceController(InstanceController):
    """InstanceController on EC2 (boto3 client)."""

    def __init__(self, client: Any):
        self.client = client

    def start(self, instance_id: str) -> str:
        try:
            response = self.client.start_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as e:
            logger.error(f"start_instances failed for {instance_id}: {e}")
            raise InstanceError(f"Could not start instance {instance_id}", detail=str(e))
        changes = response.get("StartingInstances", [])
        if not changes:
            return "unknown"
        return changes[0].get("CurrentState", {}).get("Name", "unknown")

    def describe(self, instance_id: str) -> InstanceInfo:
        try:
            response = self.client.describe_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as e:
            logger.error(f"describe_instances failed for {instance_id}: {e}")
            raise InstanceError(f"Could not describe instance {instance_id}", detail=str(e))
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                if instance.get("InstanceId") == instance_id:
                    return InstanceInfo(
                        instance_id=instance_id,
                        state=instance.get("State", {}).get("Name", "unknown"),
                        public_ip=instance.get("PublicIpAddress"),
                    )
        raise InstanceError(f"Instance not found: {instance_id}")


class MemoryInstanceController(InstanceController):
    """In-process instance for local runs and tests."""

    def __init__(self, state: str = "stopped", public_ip: Optional[str] = None,
                 started_ip: str = "203.0.113.10"):
        self.state = state
        self.public_ip = public_ip
        self.started_ip = started_ip
        self.start_calls = 0

    def start(self, instance_id: str) -> str:
        self.start_calls += 1
        if self.state != "running":
            self.state = "pending"
            self.public_ip = self.started_ip
        return self.state

    def describe(self, instance_id: str) -> InstanceInfo:
        return InstanceInfo(instance_id=instance_id, state=self.state, public_ip=self.public_ip)
