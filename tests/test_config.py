#!/usr/bin/env python3
"""
Tests for settings, the dependency container, event parsing and the
Discord REST client.

Run with: pytest tests/test_config.py -v
"""
from unittest.mock import MagicMock

import pytest
import requests
from botocore.exceptions import ClientError

from src.runtime.config import BACKEND_LAMBDA, BACKEND_SQS, Settings, load_settings
from src.runtime.deps import create_deps
from src.runtime.discord_api import DiscordClient
from src.runtime.errors import ConfigurationError, FollowUpError
from src.runtime.parse_event import EventSource, detect_event_source, parse_http_request, parse_sqs_records
from src.workqueue.work_queue import LambdaWorkQueue, SqsWorkQueue


# =============================================================================
# TEST: load_settings
# =============================================================================

class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings({})
        assert settings.region == "ap-northeast-1"
        assert settings.timezone == "Asia/Tokyo"
        assert settings.work_queue_backend == BACKEND_SQS
        assert settings.signature_tolerance_seconds == 300
        assert settings.sync_timeout_seconds == 2.5
        assert settings.enqueue_attempts == 2
        assert settings.discord_api_base == "https://discord.com/api/v10"
        assert settings.log_level == "INFO"
        print("✓ Defaults applied")

    def test_original_variable_names(self):
        settings = load_settings({
            "SSMPATH": "/discord-bot/",
            "PUBKEY": "ab" * 32,
            "QUEUEURL": "https://sqs/q",
            "TABLENAME": "state",
            "TIMEZONE": "UTC",
            "LOG_LEVEL": "debug",
        })
        assert settings.ssm_path == "/discord-bot/"
        assert settings.ssm_parameter("publickey") == "/discord-bot/publickey"
        assert settings.public_key == "ab" * 32
        assert settings.queue_url == "https://sqs/q"
        assert settings.table_name == "state"
        assert settings.log_level == "DEBUG"

    def test_backend_follows_cmdfunc(self):
        assert load_settings({"CMDFUNC": "executor"}).work_queue_backend == BACKEND_LAMBDA
        assert load_settings({"CMDFUNC": "executor", "WORK_QUEUE_BACKEND": "sqs"}).work_queue_backend == BACKEND_SQS

    @pytest.mark.parametrize("env", [
        {"WORK_QUEUE_BACKEND": "kafka"},
        {"ENQUEUE_ATTEMPTS": "0"},
        {"ENQUEUE_ATTEMPTS": "two"},
        {"SYNC_TIMEOUT_SECONDS": "fast"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            load_settings(env)

    def test_require(self):
        with pytest.raises(ConfigurationError) as exc:
            Settings().require("table_name", "TABLENAME")
        assert "TABLENAME" in exc.value.message
        with pytest.raises(ConfigurationError):
            Settings().ssm_parameter("publickey")


# =============================================================================
# TEST: Deps
# =============================================================================

class TestDeps:

    def test_public_key_from_ssm(self):
        deps = create_deps(Settings(ssm_path="/bot"))
        deps.ssm = MagicMock()
        deps.ssm.get_parameter.return_value = {"Parameter": {"Value": "cd" * 32}}

        assert deps.public_key == "cd" * 32
        assert deps.public_key == "cd" * 32
        deps.ssm.get_parameter.assert_called_once_with(Name="/bot/publickey", WithDecryption=True)
        print("✓ Public key fetched from SSM once")

    def test_ssm_failure(self):
        deps = create_deps(Settings(ssm_path="/bot"))
        deps.ssm = MagicMock()
        deps.ssm.get_parameter.side_effect = ClientError({"Error": {"Code": "ParameterNotFound"}}, "GetParameter")
        with pytest.raises(ConfigurationError):
            deps.instance_id

    def test_env_overrides_ssm(self):
        deps = create_deps(Settings(instance_id="i-env", ssm_path="/bot"))
        deps.ssm = MagicMock()
        assert deps.instance_id == "i-env"
        deps.ssm.get_parameter.assert_not_called()

    def test_work_queue_backend(self):
        sqs_deps = create_deps(Settings(queue_url="https://sqs/q"), sqs=MagicMock())
        assert isinstance(sqs_deps.work_queue, SqsWorkQueue)

        lambda_deps = create_deps(Settings(executor_function="executor", work_queue_backend=BACKEND_LAMBDA),
                                  lambda_client=MagicMock())
        assert isinstance(lambda_deps.work_queue, LambdaWorkQueue)

        with pytest.raises(ConfigurationError):
            create_deps(Settings()).work_queue

    def test_unknown_override(self):
        with pytest.raises(AttributeError):
            create_deps(Settings(), no_such_thing=1)

    def test_bot_token_optional(self):
        assert create_deps(Settings()).bot_token_or_empty == ""
        assert create_deps(Settings(bot_token="tkn")).discord.bot_token == "tkn"


# =============================================================================
# TEST: Event parsing
# =============================================================================

class TestParseEvent:

    def test_detect(self):
        assert detect_event_source({"requestContext": {"http": {"method": "POST"}}}) == EventSource.API_GATEWAY
        assert detect_event_source({"httpMethod": "GET"}) == EventSource.API_GATEWAY
        assert detect_event_source({"Records": [{"eventSource": "aws:sqs"}]}) == EventSource.SQS
        assert detect_event_source({"commandName": "x", "originInteractionId": "1"}) == EventSource.DIRECT
        assert detect_event_source({}) == EventSource.UNKNOWN

    def test_http_request(self):
        request = parse_http_request({
            "headers": {"X-Signature-Timestamp": "1"},
            "requestContext": {"http": {"method": "post", "path": "/endpoint"}, "requestId": "abc"},
            "body": "{}",
        })
        assert request.method == "POST"
        assert request.path == "/endpoint"
        assert request.body == b"{}"
        assert request.request_id == "abc"

    def test_missing_body(self):
        request = parse_http_request({"requestContext": {"http": {"method": "GET"}}})
        assert request.body == b""

    def test_sqs_records(self):
        records = parse_sqs_records({"Records": [
            {"messageId": "m1", "body": "{}", "receiptHandle": "rh", "eventSource": "aws:sqs"},
        ]})
        assert records[0].message_id == "m1"
        assert records[0].body == "{}"


# =============================================================================
# TEST: DiscordClient
# =============================================================================

def _response(status=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.content = b"x" if payload is not None else b""
    response.json.return_value = payload
    response.text = text
    return response


class TestDiscordClient:

    def test_edit_original(self):
        session = MagicMock()
        session.request.return_value = _response(payload={"id": "m"})
        client = DiscordClient(api_base="https://discord.test/api", session=session)

        assert client.edit_original("app", "tok", {"content": "hi"}) == {"id": "m"}

        args, kwargs = session.request.call_args
        assert args == ("PATCH", "https://discord.test/api/webhooks/app/tok/messages/@original")
        assert kwargs["json"] == {"content": "hi"}
        print("✓ Follow-up edits the original response")

    def test_send_followup(self):
        session = MagicMock()
        session.request.return_value = _response(payload={"id": "m2"})
        client = DiscordClient(api_base="https://discord.test/api", session=session)

        client.send_followup("app", "tok", {"content": "more"})
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://discord.test/api/webhooks/app/tok")
        assert kwargs["params"] == {"wait": "true"}

    def test_http_error(self):
        session = MagicMock()
        session.request.return_value = _response(status=404, text="Unknown Webhook")
        client = DiscordClient(session=session)
        with pytest.raises(FollowUpError):
            client.edit_original("app", "tok", {"content": "hi"})

    def test_network_error(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("reset")
        with pytest.raises(FollowUpError) as exc:
            DiscordClient(session=session).edit_original("app", "tok", {})
        assert "tok" not in str(exc.value.detail)

    def test_missing_token(self):
        with pytest.raises(FollowUpError):
            DiscordClient(session=MagicMock()).edit_original("app", "", {})

    def test_sync_commands(self):
        session = MagicMock()
        session.request.return_value = _response(payload=[{"name": "ping"}])
        client = DiscordClient(api_base="https://discord.test/api", bot_token="bot", session=session)

        assert client.sync_commands("app", [{"name": "ping"}]) == [{"name": "ping"}]
        args, kwargs = session.request.call_args
        assert args == ("PUT", "https://discord.test/api/applications/app/commands")
        assert kwargs["headers"] == {"Authorization": "Bot bot"}

        client.sync_commands("app", [], guild_id="g1")
        assert session.request.call_args[0][1] == "https://discord.test/api/applications/app/guilds/g1/commands"

    def test_sync_requires_bot_token(self):
        with pytest.raises(ConfigurationError):
            DiscordClient(session=MagicMock()).sync_commands("app", [])
