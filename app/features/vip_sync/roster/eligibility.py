"""
Turns the raw roster sheet into an eligibility map.

The first row holds headers. Only two columns matter: the member's Discord
ID and the lifetime VIP approval flag. Everything else on the sheet (form
answers, notes) is ignored.
"""

from collections.abc import Sequence

ID_COLUMN = "discord_id"
APPROVAL_COLUMN = "lifetime_vip"
APPROVED_TOKEN = "YES"

EligibilityMap = dict[str, bool]


class RosterSchemaError(Exception):
    """Roster is missing a required header column."""

    def __init__(self, message: str, missing_column: str):
        super().__init__(message)
        self.missing_column = missing_column
        self.recoverable = False


def _cell(row: Sequence, index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def _column_index(headers: list[str], name: str) -> int:
    try:
        return headers.index(name)
    except ValueError:
        raise RosterSchemaError(
            f"{name} column not found in sheet headers", missing_column=name
        ) from None


def build_eligibility_map(rows: Sequence[Sequence]) -> EligibilityMap:
    """
    Map each Discord ID on the roster to whether it is approved for lifetime VIP.

    Args:
        rows: Sheet values, header row first

    Returns:
        dict of discord_id -> approved; later rows win for duplicate IDs

    Raises:
        RosterSchemaError: If either required column is absent
    """
    if len(rows) < 2:
        return {}

    headers = [str(h or "").strip().lower() for h in rows[0]]
    id_idx = _column_index(headers, ID_COLUMN)
    approval_idx = _column_index(headers, APPROVAL_COLUMN)

    eligibility: EligibilityMap = {}
    for row in rows[1:]:
        user_id = _cell(row, id_idx)
        if not user_id:
            continue
        eligibility[user_id] = _cell(row, approval_idx).upper() == APPROVED_TOKEN

    return eligibility
