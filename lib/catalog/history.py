"""Timeline ordering for history events."""
from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from lib.catalog.matcher import ensure_sequence
from lib.catalog.models import HistoryEvent, Visibility


def _date_key(event: HistoryEvent) -> Tuple[int, int, int, int]:
    d = event.date
    # 月日が不明なイベントは、その年（月）の先頭か末尾に置く
    unknown = 13 if d.unknown_position == "end" else 0
    month = d.month if d.month else unknown
    day = d.day if d.day else (32 if d.unknown_position == "end" else 0)
    return (d.year, month, day, d.sort_order or 0)


def timeline(events: Any, include_private: bool = False, newest_first: bool = False) -> List[HistoryEvent]:
    """
    History events in chronological order.
    Private events are dropped unless include_private is set; soft-deleted
    records (deletedAt present) are always dropped.
    """
    items: Sequence[Any] = ensure_sequence(events, "history")
    parsed = [e if isinstance(e, HistoryEvent) else HistoryEvent.from_dict(e, i) for i, e in enumerate(items)]
    visible = [
        e for e in parsed
        if not e.raw.get("deletedAt")
        and (include_private or e.visibility != Visibility.PRIVATE.value)
    ]
    return sorted(visible, key=_date_key, reverse=newest_first)


def years(events: Sequence[HistoryEvent]) -> List[int]:
    return sorted({e.date.year for e in events}, reverse=True)
