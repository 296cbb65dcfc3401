"""
Discord-facing routes for the VIP sync feature.

/discord/interactions is the application's HTTP interactions endpoint and
serves the three slash commands. /internal/members/joined is called by the
gateway relay whenever a member joins the guild.
"""

import hmac
import json

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, ValidationError

from app.config import settings
from app.features.vip_sync.repository import EntitlementRepositoryError
from app.features.vip_sync.services import (
    VipSyncError,
    format_status_message,
    status_service,
    trial_service,
    vip_reconciliation_service,
)
from app.infrastructure.observability.logging import get_logger, log_sync_summary
from app.security.discord_signature import SignatureError, verify_interaction_signature
from app.services.discord_client import DiscordApiError, RoleMutationError, discord_client

logger = get_logger(__name__)

router = APIRouter(tags=["vip-sync"])
_internal_security = HTTPBearer(auto_error=False)

# Discord interaction constants
INTERACTION_PING = 1
INTERACTION_APPLICATION_COMMAND = 2
RESPONSE_PONG = 1
RESPONSE_CHANNEL_MESSAGE = 4
RESPONSE_DEFERRED_CHANNEL_MESSAGE = 5
EPHEMERAL_FLAG = 1 << 6

SLASH_COMMANDS = [
    {"name": "form", "description": "Get the VIP verification form", "type": 1},
    {"name": "status", "description": "Check your VIP status", "type": 1},
    {"name": "reactivate", "description": "Sync your VIP status now (optional)", "type": 1},
]


class DiscordInteraction(BaseModel):
    """The fields of an interaction payload the commands read."""

    model_config = ConfigDict(extra="ignore")

    type: int
    token: str | None = None
    data: dict | None = None
    member: dict | None = None
    user: dict | None = None

    @property
    def command_name(self) -> str | None:
        return (self.data or {}).get("name")

    @property
    def user_id(self) -> str | None:
        user = (self.member or {}).get("user") or self.user or {}
        return user.get("id")


class MemberJoinedRequest(BaseModel):
    user_id: str


class MemberJoinedResponse(BaseModel):
    user_id: str
    vip_until: int
    trial_until: int
    trial_created: bool


def _ephemeral(content: str) -> dict:
    return {
        "type": RESPONSE_CHANNEL_MESSAGE,
        "data": {"content": content, "flags": EPHEMERAL_FLAG},
    }


async def manual_sync_message() -> str:
    """Run a manual pass and describe the outcome for the requester."""
    try:
        summary = await vip_reconciliation_service.run_once()
    except VipSyncError as e:
        return f"❌ Sync error: {e}"

    if summary.skipped:
        return "⏳ Sync already running, try again in a moment."

    log_sync_summary("manual", summary.to_dict())
    return "✅ Synced. Your VIP status is up to date."


async def run_manual_sync(interaction_token: str) -> None:
    """Background task behind /reactivate: sync, then edit the deferred reply."""
    message = await manual_sync_message()
    try:
        await discord_client.edit_interaction_response(interaction_token, message)
    except DiscordApiError as e:
        logger.error("Failed to deliver /reactivate result", error=str(e), status_code=e.status_code)


@router.post("/discord/interactions")
async def discord_interactions(request: Request, background_tasks: BackgroundTasks) -> dict:
    """Discord HTTP interactions endpoint."""
    body = await request.body()

    try:
        verified = verify_interaction_signature(
            request.headers.get("X-Signature-Ed25519"),
            request.headers.get("X-Signature-Timestamp"),
            body,
        )
    except SignatureError as e:
        logger.error("Interaction signature check misconfigured", error=str(e))
        verified = False

    if not verified:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid request signature")

    try:
        interaction = DiscordInteraction.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="malformed interaction") from e

    if interaction.type == INTERACTION_PING:
        return {"type": RESPONSE_PONG}

    if interaction.type != INTERACTION_APPLICATION_COMMAND:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unsupported interaction type")

    command = interaction.command_name
    logger.info("Slash command received", command=command, user_id=interaction.user_id)

    if command == "form":
        return _ephemeral(settings.FORM_URL or "The VIP form link is not configured yet.")

    if command == "status":
        if not interaction.user_id:
            return _ephemeral("❌ Status error.")
        try:
            result = await status_service.get_status(interaction.user_id)
        except EntitlementRepositoryError as e:
            logger.error("Status lookup failed", user_id=interaction.user_id, error=str(e))
            return _ephemeral("❌ Status error.")
        return _ephemeral(format_status_message(result))

    if command == "reactivate":
        background_tasks.add_task(run_manual_sync, interaction.token)
        return {"type": RESPONSE_DEFERRED_CHANNEL_MESSAGE, "data": {"flags": EPHEMERAL_FLAG}}

    return _ephemeral("Unknown command.")


def require_internal_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_internal_security),
) -> None:
    expected = settings.INTERNAL_API_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="INTERNAL_API_TOKEN is not configured"
        )
    if credentials is None or not hmac.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal token",
            headers={"WWW-Authenticate": "Bearer"},
        )


@router.post("/internal/members/joined", response_model=MemberJoinedResponse)
async def member_joined(
    payload: MemberJoinedRequest, _: None = Depends(require_internal_token)
) -> MemberJoinedResponse:
    """Grant the 30-day trial to a member who just joined."""
    try:
        window = await trial_service.grant_trial_on_join(payload.user_id)
    except RoleMutationError as e:
        logger.error("Trial role grant failed", user_id=payload.user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Role grant failed: {e}") from e
    except EntitlementRepositoryError as e:
        logger.error("Trial record write failed", user_id=payload.user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Entitlement store unavailable"
        ) from e

    return MemberJoinedResponse(
        user_id=window.user_id,
        vip_until=window.vip_until,
        trial_until=window.trial_until,
        trial_created=window.mutated,
    )
