from dataclasses import dataclass
from datetime import datetime, timedelta

from chatvault.services.models import MessageResponse

GROUP_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True)
class TimelineRow:
    message: MessageResponse
    date_separator: str | None
    grouped: bool


def local_date(value: datetime):
    return value.astimezone().date()


def needs_date_separator(current: MessageResponse, previous: MessageResponse | None) -> bool:
    if previous is None:
        return True
    return local_date(current.created_at) != local_date(previous.created_at)


def groups_with_previous(current: MessageResponse, previous: MessageResponse | None) -> bool:
    if previous is None or previous.sender_id != current.sender_id:
        return False
    return current.created_at - previous.created_at < GROUP_WINDOW


def format_time(value: datetime, now: datetime | None = None) -> str:
    """
    "14:05" today, "Yesterday 14:05", otherwise "Mar 02 14:05".
    """
    value = value.astimezone()
    today = (now or datetime.now().astimezone()).astimezone().date()
    clock = value.strftime("%H:%M")

    if value.date() == today:
        return clock
    if value.date() == today - timedelta(days=1):
        return f"Yesterday {clock}"
    return f"{value.strftime('%b %d')} {clock}"


def build_rows(messages: list[MessageResponse]) -> list[TimelineRow]:
    rows = []
    previous = None
    for message in messages:
        separator = None
        if needs_date_separator(message, previous):
            separator = local_date(message.created_at).strftime("%A, %B %d, %Y")
        rows.append(TimelineRow(
            message=message,
            date_separator=separator,
            grouped=groups_with_previous(message, previous)
        ))
        previous = message
    return rows
