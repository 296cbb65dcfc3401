import pytest

from app.features.vip_sync.roster import RosterSchemaError, build_eligibility_map


def test_approved_and_unapproved_rows():
    rows = [
        ["Timestamp", "Discord_ID", "Lifetime_VIP"],
        ["2024-01-01", "123", "YES"],
        ["2024-01-02", "456", "no"],
        ["2024-01-03", "789", ""],
    ]

    assert build_eligibility_map(rows) == {"123": True, "456": False, "789": False}


def test_headers_and_values_are_trimmed_and_case_insensitive():
    rows = [
        ["  DISCORD_ID ", " lifetime_vip"],
        [" 123 ", " yes "],
    ]

    assert build_eligibility_map(rows) == {"123": True}


def test_rows_with_empty_id_are_skipped():
    rows = [["discord_id", "lifetime_vip"], ["", "YES"], ["   ", "YES"], ["42", "YES"]]

    assert build_eligibility_map(rows) == {"42": True}


def test_short_rows_treated_as_not_approved():
    rows = [["lifetime_vip", "notes", "discord_id"], ["YES", "x", "1"], [], ["", "", "2"], ["YES"]]

    assert build_eligibility_map(rows) == {"1": True, "2": False}


def test_last_row_wins_for_duplicate_ids():
    rows = [["discord_id", "lifetime_vip"], ["123", "YES"], ["123", "NO"]]

    assert build_eligibility_map(rows) == {"123": False}


@pytest.mark.parametrize("rows", [[], [["discord_id", "lifetime_vip"]]])
def test_empty_or_header_only_roster_returns_empty_map(rows):
    assert build_eligibility_map(rows) == {}


def test_missing_approval_column_raises():
    rows = [["discord_id", "approved"], ["123", "YES"]]

    with pytest.raises(RosterSchemaError) as exc:
        build_eligibility_map(rows)

    assert exc.value.missing_column == "lifetime_vip"


def test_missing_id_column_raises():
    rows = [["user", "lifetime_vip"], ["123", "YES"]]

    with pytest.raises(RosterSchemaError) as exc:
        build_eligibility_map(rows)

    assert exc.value.missing_column == "discord_id"
