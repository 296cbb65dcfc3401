import asyncio

import pytest

from app.features.vip_sync.domain import EntitlementRecord, GuildMember, GuildRole
from app.services.discord_client import RoleMutationError

VIP_ROLE_ID = "role-vip"
NOW_MS = 1_700_000_000_000


class FakeEntitlementStore:
    def __init__(self, records: dict[str, EntitlementRecord] | None = None):
        self.records: dict[str, EntitlementRecord] = dict(records or {})
        self.writes: list[tuple[str, int, int]] = []

    def seed(self, user_id: str, vip_until: int, trial_until: int) -> None:
        self.records[user_id] = EntitlementRecord(user_id, vip_until, trial_until)

    async def get(self, user_id: str) -> EntitlementRecord | None:
        record = self.records.get(user_id)
        if record is None:
            return None
        return EntitlementRecord(record.user_id, record.vip_until, record.trial_until)

    async def upsert(self, user_id: str, vip_until: int, trial_until: int) -> None:
        self.writes.append((user_id, vip_until, trial_until))
        self.records[user_id] = EntitlementRecord(user_id, vip_until, trial_until)

    async def list_all(self) -> list[EntitlementRecord]:
        return [EntitlementRecord(r.user_id, r.vip_until, r.trial_until) for r in self.records.values()]


class FakePlatform:
    def __init__(self, role_id: str = VIP_ROLE_ID):
        self.role = GuildRole(id=role_id, name="VIP")
        self.members: dict[str, set[str]] = {}
        self.joined_at: dict[str, int | None] = {}
        self.fail_mutations_for: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.messages: list[tuple[str, str]] = []

    def add_member(self, user_id: str, roles: set[str] | None = None, joined_at_ms: int | None = None):
        self.members[user_id] = set(roles or ())
        self.joined_at[user_id] = joined_at_ms

    def has_role(self, user_id: str) -> bool:
        return self.role.id in self.members.get(user_id, set())

    async def get_role(self, role_id: str) -> GuildRole | None:
        return self.role if role_id == self.role.id else None

    async def fetch_member(self, user_id: str) -> GuildMember | None:
        self.calls.append(("fetch_member", user_id))
        if user_id not in self.members:
            return None
        return GuildMember(
            id=user_id,
            role_ids=frozenset(self.members[user_id]),
            joined_at_ms=self.joined_at.get(user_id),
        )

    async def add_role(self, user_id: str, role_id: str, reason: str = "") -> None:
        self.calls.append(("add_role", user_id))
        if user_id in self.fail_mutations_for:
            raise RoleMutationError("Missing Permissions", status_code=403, operation="add_role")
        self.members.setdefault(user_id, set()).add(role_id)

    async def remove_role(self, user_id: str, role_id: str, reason: str = "") -> None:
        self.calls.append(("remove_role", user_id))
        if user_id in self.fail_mutations_for:
            raise RoleMutationError("Missing Permissions", status_code=403, operation="remove_role")
        self.members.get(user_id, set()).discard(role_id)

    async def send_channel_message(self, channel_id: str, content: str) -> None:
        self.messages.append((channel_id, content))

    def mutation_calls(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] != "fetch_member"]


class StaticRoster:
    def __init__(self, rows: list[list[str]] | None = None):
        self.rows = rows or [["discord_id", "lifetime_vip"]]
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def fetch_rows(self) -> list[list[str]]:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        return [list(row) for row in self.rows]


@pytest.fixture
def store():
    return FakeEntitlementStore()


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def roster():
    return StaticRoster()


@pytest.fixture
def clock():
    return lambda: NOW_MS
