"""Price propagation scheduler.

Keeps one pending heap entry per open position, keyed by the next date its
series reports a price. Draining the heap advances marks only for securities
that actually print on a date, so a replay costs O(price updates * log n)
instead of O(dates * securities).
"""

from typing import Dict, Iterator, List, Tuple
import heapq
import itertools
import logging

from engine.account import AccountState
from engine.models import SecuritySeries, is_valid_price

logger = logging.getLogger(__name__)


class PricePropagationScheduler:
    """Date-ordered min-heap of pending mark updates.

    Heap entries are (date, security_id, token). The token is stored on the
    position when the entry is pushed; entries whose token no longer matches
    (position closed or re-opened since) are discarded when popped.
    """

    def __init__(self, account: AccountState, series_by_id: Dict[str, SecuritySeries], end_date: int):
        self.account = account
        self.series_by_id = series_by_id
        self.end_date = end_date
        self._heap: List[Tuple[int, str, int]] = []
        self._tokens = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def peek_date(self):
        return self._heap[0][0] if self._heap else None

    def schedule(self, security_id: str) -> None:
        """Push the position's next observed date, if any, within the run window."""
        position = self.account.positions.get(security_id)
        series = self.series_by_id.get(security_id)
        if position is None or series is None:
            return
        position.pending_token = None
        ni = position.next_index
        if 0 <= ni < len(series):
            next_date = int(series.dates[ni])
            if next_date <= self.end_date:
                token = next(self._tokens)
                position.pending_token = token
                heapq.heappush(self._heap, (next_date, security_id, token))

    def _apply(self, date: int, security_id: str, token: int) -> bool:
        position = self.account.positions.get(security_id)
        if position is None or position.pending_token != token:
            return False
        series = self.series_by_id[security_id]
        idx = position.next_index
        position.next_index = idx + 1
        price = series.close[idx]
        if is_valid_price(price):
            self.account.mark_position(security_id, float(price))
        else:
            logger.debug(f"{security_id}: no quote on {date}, carrying mark {position.last_mark_price}")
        self.schedule(security_id)
        return True

    def _apply_date(self, date: int) -> bool:
        applied = False
        while self._heap and self._heap[0][0] == date:
            _, security_id, token = heapq.heappop(self._heap)
            applied = self._apply(date, security_id, token) or applied
        return applied

    def drain_up_to(self, date: int) -> Iterator[int]:
        """Apply every pending update dated strictly before date.

        Updates sharing a date are applied together; the date is yielded once
        they are all applied so the caller can record one equity point for it.
        Dates holding only stale entries are not yielded.
        """
        while self._heap and self._heap[0][0] < date:
            current = self._heap[0][0]
            if self._apply_date(current):
                yield current

    def apply_at(self, date: int) -> None:
        """Apply pending updates dated exactly date."""
        self._apply_date(date)
