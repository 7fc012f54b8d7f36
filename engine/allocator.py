"""Equal-weight capital allocator for same-day entries.

Available cash is split evenly across the securities entering on a date.
Candidates that cannot afford a single lot at the equal budget are dropped and
the budget is recomputed for the survivors until the set is stable.
"""

from typing import List, Sequence
import logging

from engine.account import AccountState
from engine.broker import BrokerModel
from engine.models import EntryInfo, ExecutionEvent, Position

logger = logging.getLogger(__name__)


class EqualWeightAllocator:
    """Splits cash across same-day buy intents in whole lots.

    Existing open positions are never rebalanced: only the securities entering
    on the day compete for the day's cash.
    """

    def __init__(self, broker: BrokerModel):
        self.broker = broker

    def _affordable(self, event: ExecutionEvent, budget: float) -> bool:
        return self.broker.max_affordable_quantity(event.price, budget) > 0

    def _cheapest_fitting(self, candidates: List[ExecutionEvent], cash: float) -> List[ExecutionEvent]:
        """Largest set of cheapest candidates that each afford a lot at the equal budget."""
        ranked = sorted(candidates, key=lambda ev: (self.broker.unit_cost(ev.price), ev.security_id))
        keep = 0
        for k in range(1, len(ranked) + 1):
            if self._affordable(ranked[k - 1], cash / k):
                keep = k
            else:
                break
        kept = {ev.security_id for ev in ranked[:keep]}
        return [ev for ev in candidates if ev.security_id in kept]

    def narrow(self, candidates: Sequence[ExecutionEvent], cash: float) -> List[ExecutionEvent]:
        """Fixed-point narrowing of the candidate set.

        Each round either returns or strictly shrinks the set, so the loop runs
        at most len(candidates) + 1 times.
        """
        current = list(candidates)
        for _ in range(len(current) + 1):
            if not current:
                return []
            budget = cash / len(current)
            affordable = [ev for ev in current if self._affordable(ev, budget)]
            if len(affordable) == len(current):
                return current
            if not affordable:
                affordable = self._cheapest_fitting(current, cash)
                if len(affordable) >= len(current):
                    return []
            current = affordable
        return []

    def allocate(self, account: AccountState, buy_events: Sequence[ExecutionEvent]) -> List[Position]:
        """
        Open positions for the day's buy intents.

        Args:
            account: Account to debit
            buy_events: Same-day buy events in settlement order

        Returns:
            Newly opened positions, in commit order
        """
        seen = set()
        candidates: List[ExecutionEvent] = []
        for ev in buy_events:
            if ev.security_id in seen or account.has_position(ev.security_id):
                continue
            seen.add(ev.security_id)
            candidates.append(ev)
        if not candidates:
            return []

        chosen = self.narrow(candidates, account.cash)
        skipped = len(candidates) - len(chosen)
        if skipped:
            logger.debug(f"{candidates[0].date}: {skipped} of {len(candidates)} entries unaffordable at equal weight")

        opened: List[Position] = []
        for k, ev in enumerate(chosen):
            # Live budget so lot rounding leftovers flow to later heads
            budget_now = account.cash / (len(chosen) - k)
            quantity = self.broker.max_affordable_quantity(ev.price, min(budget_now, account.cash))
            if quantity <= 0:
                logger.debug(f"{ev.date}: {ev.security_id} cannot afford a lot at {ev.price}")
                continue
            can_afford, required_cash = self.broker.can_afford_position(ev.price, quantity, account.cash)
            if not can_afford:
                logger.debug(f"{ev.date}: {ev.security_id} needs {required_cash:.2f}, cash {account.cash:.2f}")
                continue
            gross, fee, total_cost = self.broker.entry_cost(ev.price, quantity)
            position = Position(
                security_id=ev.security_id,
                shares=quantity,
                last_mark_price=ev.price,
                next_index=ev.exec_index + 1,
                entry=EntryInfo(date=ev.date, price=ev.price, cost_basis=total_cost, fee=fee),
            )
            account.open_position(position, total_cost, commission=fee)
            opened.append(position)
        return opened
