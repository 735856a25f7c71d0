# =============================================================================
# Discord REST Client - Follow-up Channel
# =============================================================================
# Deferred results are delivered through the interaction webhook, keyed by
# application id + interaction token, never through the original response.
# Ref: https://discord.com/developers/docs/interactions/receiving-and-responding
# =============================================================================

import logging
from typing import Any, Dict, List, Optional

import requests

from src.runtime.config import DEFAULT_DISCORD_API_BASE
from src.runtime.errors import ConfigurationError, FollowUpError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10


class DiscordClient:
    """Minimal Discord REST client for follow-ups and command sync."""

    def __init__(self, api_base: str = DEFAULT_DISCORD_API_BASE, bot_token: str = "",
                 session: Optional[requests.Session] = None,
                 timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.api_base = api_base.rstrip("/")
        self.bot_token = bot_token
        self.session = session or requests.Session()
        self.timeout = timeout

    def webhook_url(self, application_id: str, token: str) -> str:
        return f"{self.api_base}/webhooks/{application_id}/{token}"

    def _request(self, method: str, url: str, what: str, **kwargs) -> Any:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Discord {what} request failed: {type(e).__name__}")
            raise FollowUpError(f"Discord {what} request failed", detail=type(e).__name__)

        if response.status_code >= 400:
            logger.error(f"Discord {what} rejected: HTTP {response.status_code} {response.text[:200]}")
            raise FollowUpError(f"Discord {what} rejected: HTTP {response.status_code}",
                                detail=response.text[:500])
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def edit_original(self, application_id: str, token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the deferred "thinking..." response with the real answer."""
        if not application_id or not token:
            raise FollowUpError("Follow-up requires application id and token")
        url = f"{self.webhook_url(application_id, token)}/messages/@original"
        return self._request("PATCH", url, "edit_original", json=body)

    def send_followup(self, application_id: str, token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Post an additional follow-up message."""
        if not application_id or not token:
            raise FollowUpError("Follow-up requires application id and token")
        return self._request("POST", self.webhook_url(application_id, token), "send_followup",
                             params={"wait": "true"}, json=body)

    def sync_commands(self, application_id: str, commands: List[Dict[str, Any]],
                      guild_id: str = "") -> List[Dict[str, Any]]:
        """Bulk-overwrite global (or guild) slash commands."""
        if not self.bot_token:
            raise ConfigurationError("BOT_TOKEN is required to sync commands")
        if guild_id:
            url = f"{self.api_base}/applications/{application_id}/guilds/{guild_id}/commands"
        else:
            url = f"{self.api_base}/applications/{application_id}/commands"
        result = self._request("PUT", url, "sync_commands", json=commands,
                               headers={"Authorization": f"Bot {self.bot_token}"})
        return result if isinstance(result, list) else []
