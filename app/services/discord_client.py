"""
Discord REST client for guild role management.

Only the handful of v10 endpoints the VIP sync needs: role lookup, single
member lookup (never the full member list), role add/remove, log channel
messages, guild command registration and interaction reply edits.
"""

from datetime import datetime
from typing import Any

import httpx

from app.config import settings
from app.features.vip_sync.domain import GuildMember, GuildRole
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DISCORD_API_BASE_URL = "https://discord.com/api/v10"
REQUEST_TIMEOUT = 10  # seconds
USER_AGENT = "DiscordBot (https://github.com/vip-roster-sync, 0.1.0)"


class DiscordApiError(Exception):
    """Custom exception for Discord API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation
        self.response_data = response_data or {}


class RoleMutationError(DiscordApiError):
    """Discord rejected a role add/remove for one member."""


def _parse_joined_at(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(value).timestamp() * 1000)
    except ValueError:
        logger.warning("Unparseable joined_at from Discord", joined_at=value)
        return None


def member_from_payload(payload: dict[str, Any]) -> GuildMember:
    """Build a GuildMember from a Discord guild member object."""
    return GuildMember(
        id=str(payload["user"]["id"]),
        role_ids=frozenset(str(r) for r in payload.get("roles", [])),
        joined_at_ms=_parse_joined_at(payload.get("joined_at")),
    )


class DiscordClient:
    """Thin async wrapper over the Discord REST API for one guild."""

    def __init__(
        self,
        token: str | None = None,
        guild_id: str | None = None,
        application_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.token = token if token is not None else settings.DISCORD_TOKEN
        self.guild_id = guild_id or settings.DISCORD_GUILD_ID
        self.application_id = application_id or settings.DISCORD_APPLICATION_ID
        self._client = http_client or httpx.AsyncClient(
            base_url=DISCORD_API_BASE_URL, timeout=httpx.Timeout(REQUEST_TIMEOUT)
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self, reason: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bot {self.token}",
            "User-Agent": USER_AGENT,
        }
        if reason:
            headers["X-Audit-Log-Reason"] = reason
        return headers

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise DiscordApiError(f"Discord {operation} request failed: {e}", operation=operation) from e

    @staticmethod
    def _error_payload(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def get_role(self, role_id: str) -> GuildRole | None:
        """Look up a guild role by ID; None if the guild has no such role."""
        response = await self._request(
            "GET", f"/guilds/{self.guild_id}/roles", "get_role", headers=self._headers()
        )
        if response.status_code != 200:
            raise DiscordApiError(
                f"Failed to list guild roles: HTTP {response.status_code}",
                status_code=response.status_code,
                operation="get_role",
                response_data=self._error_payload(response),
            )

        for role in response.json():
            if str(role.get("id")) == str(role_id):
                return GuildRole(id=str(role["id"]), name=role.get("name", ""))
        return None

    async def fetch_member(self, user_id: str) -> GuildMember | None:
        """
        Fetch one guild member by ID.

        Never raises: unknown members, members who left and lookup errors
        all come back as None so callers can skip the member.
        """
        try:
            response = await self._request(
                "GET",
                f"/guilds/{self.guild_id}/members/{user_id}",
                "fetch_member",
                headers=self._headers(),
            )
        except DiscordApiError as e:
            logger.warning("Discord member lookup failed", user_id=user_id, error=str(e))
            return None

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.warning(
                "Discord member lookup returned error",
                user_id=user_id,
                status_code=response.status_code,
            )
            return None

        return member_from_payload(response.json())

    async def _mutate_role(self, method: str, user_id: str, role_id: str, reason: str) -> None:
        operation = "add_role" if method == "PUT" else "remove_role"
        try:
            response = await self._request(
                method,
                f"/guilds/{self.guild_id}/members/{user_id}/roles/{role_id}",
                operation,
                headers=self._headers(reason),
            )
        except DiscordApiError as e:
            raise RoleMutationError(str(e), operation=operation) from e

        if response.status_code not in (200, 204):
            raise RoleMutationError(
                f"Discord {operation} failed: HTTP {response.status_code}",
                status_code=response.status_code,
                operation=operation,
                response_data=self._error_payload(response),
            )

    async def add_role(self, user_id: str, role_id: str, reason: str = "VIP sync") -> None:
        """Grant a role; raises RoleMutationError if Discord rejects it."""
        await self._mutate_role("PUT", user_id, role_id, reason)

    async def remove_role(self, user_id: str, role_id: str, reason: str = "VIP sync") -> None:
        """Revoke a role; raises RoleMutationError if Discord rejects it."""
        await self._mutate_role("DELETE", user_id, role_id, reason)

    async def send_channel_message(self, channel_id: str, content: str) -> None:
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            "send_channel_message",
            headers=self._headers(),
            json={"content": content, "allowed_mentions": {"parse": []}},
        )
        if response.status_code not in (200, 201):
            raise DiscordApiError(
                f"Failed to post channel message: HTTP {response.status_code}",
                status_code=response.status_code,
                operation="send_channel_message",
            )

    async def register_guild_commands(self, commands: list[dict[str, Any]]) -> None:
        """Bulk overwrite the application's guild-scoped slash commands."""
        response = await self._request(
            "PUT",
            f"/applications/{self.application_id}/guilds/{self.guild_id}/commands",
            "register_guild_commands",
            headers=self._headers(),
            json=commands,
        )
        if response.status_code != 200:
            raise DiscordApiError(
                f"Failed to register guild commands: HTTP {response.status_code}",
                status_code=response.status_code,
                operation="register_guild_commands",
                response_data=self._error_payload(response),
            )
        logger.info("Guild slash commands registered", count=len(commands))

    async def edit_interaction_response(self, interaction_token: str, content: str) -> None:
        """Replace the original (deferred) interaction reply."""
        response = await self._request(
            "PATCH",
            f"/webhooks/{self.application_id}/{interaction_token}/messages/@original",
            "edit_interaction_response",
            json={"content": content},
        )
        if response.status_code != 200:
            raise DiscordApiError(
                f"Failed to edit interaction response: HTTP {response.status_code}",
                status_code=response.status_code,
                operation="edit_interaction_response",
            )


# Shared client for the sync, join and command paths
discord_client = DiscordClient()
