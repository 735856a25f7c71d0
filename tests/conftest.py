"""
Pytest configuration and shared fixtures for the dispatcher tests.

Signing uses a fixed PyNaCl key so signatures are real Ed25519 signatures;
AWS-backed adapters are replaced by the in-memory ones.
"""
import json
import os
import sys
import time
from unittest.mock import MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set required environment variables BEFORE imports
os.environ.setdefault("AWS_REGION", "ap-northeast-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-northeast-1")
os.environ.setdefault("TABLENAME", "test-table")
os.environ.setdefault("QUEUEURL", "https://sqs.ap-northeast-1.amazonaws.com/123456789012/test-queue")

from nacl.signing import SigningKey

from src.runtime.config import Settings
from src.runtime.deps import create_deps
from src.runtime.instances import MemoryInstanceController
from src.runtime.interaction import CommandResult
from src.runtime.invoker import CommandInvoker
from src.runtime.registry import CommandDescriptor, CommandRegistry
from src.store.state_store import MemoryStateStore
from src.workqueue.work_queue import MemoryWorkQueue

# 2024-ish snowflake
INTERACTION_ID = "1203456789012345678"
APPLICATION_ID = "1100000000000000001"
GUILD_ID = "81384788765712384"
USER_ID = "80351110224678912"
INSTANCE_ID = "i-0123456789abcdef0"


@pytest.fixture
def signing_key():
    return SigningKey(bytes(range(32)))


@pytest.fixture
def public_key_hex(signing_key):
    return signing_key.verify_key.encode().hex()


@pytest.fixture
def sign(signing_key):
    """sign(body, timestamp=None) -> (timestamp, signature_hex)."""
    def _sign(body, timestamp=None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        timestamp = timestamp or str(int(time.time()))
        signature = signing_key.sign(timestamp.encode("utf-8") + body).signature.hex()
        return timestamp, signature
    return _sign


@pytest.fixture
def settings(public_key_hex):
    return Settings(
        public_key=public_key_hex,
        table_name="test-table",
        queue_url="https://sqs.ap-northeast-1.amazonaws.com/123456789012/test-queue",
        instance_id=INSTANCE_ID,
        sync_timeout_seconds=1.0,
        enqueue_attempts=2,
    )


@pytest.fixture
def deps(settings):
    return create_deps(
        settings,
        state_store=MemoryStateStore(),
        work_queue=MemoryWorkQueue(),
        instances=MemoryInstanceController(),
        discord=MagicMock(),
    )


@pytest.fixture
def calls():
    """Records handler executions."""
    return []


@pytest.fixture
def registry(calls):
    """Registry with one sync and one async test command."""
    def handle_ping_cmd(interaction, deps):
        calls.append(("ping-cmd", interaction.id))
        return CommandResult.message("pong")

    def handle_long_task(interaction, deps):
        calls.append(("long-task", interaction.id))
        return CommandResult.message("long task finished")

    return CommandRegistry([
        CommandDescriptor(name="ping-cmd", handler=handle_ping_cmd, is_async=False),
        CommandDescriptor(name="long-task", handler=handle_long_task, is_async=True),
    ])


@pytest.fixture
def invoker(deps):
    return CommandInvoker(deps, sync_timeout_seconds=1.0, enqueue_attempts=2, sleep=lambda s: None)


def command_body(name, options=None, interaction_id=INTERACTION_ID, guild_id=GUILD_ID, **extra):
    """Interaction dict for an application command."""
    body = {
        "type": 2,
        "id": interaction_id,
        "application_id": APPLICATION_ID,
        "token": "interaction-token",
        "data": {"name": name, "options": options or []},
        "member": {"user": {"id": USER_ID}},
    }
    if guild_id:
        body["guild_id"] = guild_id
    body.update(extra)
    return body


def encode(body):
    return json.dumps(body).encode("utf-8")


@pytest.fixture
def make_command():
    return command_body
