"""
Google Sheets roster reader.

Reads the approved-members sheet with a service account. The access token
comes from the OAuth2 JWT-bearer grant: a short RS256 assertion signed with
the service account key is exchanged for a bearer token, cached until just
before it expires.
"""

import asyncio
import json
import time
from pathlib import Path
from urllib.parse import quote

import httpx
import jwt

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SHEETS_API_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_READONLY_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60


class RosterFetchError(Exception):
    """Roster could not be read from Google Sheets."""

    def __init__(self, message: str, status_code: int | None = None, operation: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation
        self.recoverable = True


class GoogleSheetsRosterReader:
    """
    Reads raw roster rows from one sheet tab.

    Rows come back exactly as the Sheets API returns them: a list of rows,
    each a list of strings, trailing empty cells omitted.
    """

    def __init__(
        self,
        spreadsheet_id: str | None = None,
        sheet_range: str | None = None,
        credentials: dict | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.spreadsheet_id = spreadsheet_id or settings.SHEET_ID
        self.sheet_range = sheet_range or settings.sheet_range()
        self._credentials = credentials
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    async def close(self) -> None:
        await self._client.aclose()

    def _load_credentials(self) -> dict:
        if self._credentials is None:
            path = Path(settings.GOOGLE_SERVICE_ACCOUNT_FILE)
            try:
                self._credentials = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise RosterFetchError(
                    f"Cannot load service account credentials from {path}: {e}",
                    operation="load_credentials",
                ) from e
        return self._credentials

    def _build_assertion(self, issued_at: int) -> str:
        creds = self._load_credentials()
        token_uri = creds.get("token_uri", GOOGLE_TOKEN_URL)
        claims = {
            "iss": creds["client_email"],
            "scope": SHEETS_READONLY_SCOPE,
            "aud": token_uri,
            "iat": issued_at,
            "exp": issued_at + TOKEN_LIFETIME_SECONDS,
        }
        headers = {"kid": creds["private_key_id"]} if creds.get("private_key_id") else None
        return jwt.encode(claims, creds["private_key"], algorithm="RS256", headers=headers)

    async def _get_access_token(self) -> str:
        now = time.time()
        if self._access_token and now < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._access_token

        creds = self._load_credentials()
        assertion = self._build_assertion(int(now))
        response = await self._request_with_retry(
            "POST",
            creds.get("token_uri", GOOGLE_TOKEN_URL),
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )
        if response.status_code != 200:
            raise RosterFetchError(
                f"Service account token exchange failed: HTTP {response.status_code}",
                status_code=response.status_code,
                operation="token_exchange",
            )

        payload = response.json()
        self._access_token = payload["access_token"]
        self._token_expires_at = now + int(payload.get("expires_in", TOKEN_LIFETIME_SECONDS))
        logger.debug("Google service account token refreshed")
        return self._access_token

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR ** (attempt - 1)
                    logger.warning(
                        "Sheets API transient status, retrying",
                        status_code=response.status_code,
                        attempt=attempt,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise RosterFetchError(
                        f"Sheets API unreachable: {e}", operation="request"
                    ) from e
                backoff = BACKOFF_FACTOR ** (attempt - 1)
                logger.warning(
                    "Sheets API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RosterFetchError("Sheets API retry loop exhausted", operation="request")

    async def fetch_rows(self) -> list[list[str]]:
        """
        Read the roster tab.

        Returns:
            Rows with the header row first; empty list for an empty sheet

        Raises:
            RosterFetchError: On auth, transport or HTTP failures
        """
        if not self.spreadsheet_id:
            raise RosterFetchError("SHEET_ID is not configured", operation="fetch_rows")

        token = await self._get_access_token()
        url = f"{SHEETS_API_BASE_URL}/{self.spreadsheet_id}/values/{quote(self.sheet_range, safe='')}"
        response = await self._request_with_retry(
            "GET", url, headers={"Authorization": f"Bearer {token}", "Accept": "application/json"}
        )

        if response.status_code != 200:
            raise RosterFetchError(
                f"Sheets values.get failed: HTTP {response.status_code}",
                status_code=response.status_code,
                operation="fetch_rows",
            )

        rows = response.json().get("values", [])
        logger.debug("Roster rows fetched", row_count=len(rows))
        return rows


roster_reader = GoogleSheetsRosterReader()
