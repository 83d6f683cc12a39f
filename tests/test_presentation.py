from datetime import datetime, timedelta, timezone

from chatvault.client.presentation import build_rows, format_time, groups_with_previous, needs_date_separator
from chatvault.services.models import MessageResponse

NOON = datetime(2026, 3, 1, 12, 10, tzinfo=timezone.utc)


def make_message(message_id, at, sender="alice"):
    return MessageResponse(id=message_id, conversation_id="conv-1", sender_id=sender, text=message_id, created_at=at)


def test_first_message_gets_separator():
    assert needs_date_separator(make_message("a", NOON), None) is True


def test_separator_only_on_new_day():
    first = make_message("a", NOON)

    assert needs_date_separator(make_message("b", NOON + timedelta(minutes=10)), first) is False
    assert needs_date_separator(make_message("c", NOON + timedelta(days=2)), first) is True


def test_grouping_needs_same_sender_within_five_minutes():
    first = make_message("a", NOON)

    assert groups_with_previous(make_message("b", NOON + timedelta(minutes=4)), first) is True
    assert groups_with_previous(make_message("c", NOON + timedelta(minutes=5)), first) is False
    assert groups_with_previous(make_message("d", NOON + timedelta(minutes=1), sender="bob"), first) is False
    assert groups_with_previous(first, None) is False


def test_build_rows():
    messages = [
        make_message("a", NOON),
        make_message("b", NOON + timedelta(minutes=1)),
        make_message("c", NOON + timedelta(minutes=2), sender="bob"),
        make_message("d", NOON + timedelta(days=2)),
    ]

    rows = build_rows(messages)

    assert [row.date_separator is not None for row in rows] == [True, False, False, True]
    assert [row.grouped for row in rows] == [False, True, False, False]


def test_format_time():
    now = NOON.astimezone()
    clock = now.strftime("%H:%M")

    assert format_time(NOON, now=now) == clock
    assert format_time(NOON - timedelta(days=1), now=now).startswith("Yesterday ")
    older = NOON - timedelta(days=10)
    assert format_time(older, now=now) == older.astimezone().strftime("%b %d %H:%M")
