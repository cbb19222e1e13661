"""Per-user spending ledger

Tracks cumulative spend per user id against a fixed limit. State lives in
process memory and resets on restart; swap in another BudgetLedger
implementation for durable storage.

Two admission styles are exposed:

* check_budget() + record_spending(): independent read and write. Two
  concurrent requests for the same user can both pass the check before either
  records, so aggregate spend can exceed the limit.
* reserve() + commit()/release(): check-and-hold under a per-user lock.
  Pending reservations count against the limit, so concurrent admissions are
  strict. The try-on pipeline uses this path.
"""
import abc
import logging
import threading
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Union

from config import PER_USER_LIMIT

logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, float, str]


def to_decimal(amount: Amount) -> Decimal:
    """Convert a monetary amount to Decimal without float artifacts"""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


@dataclass(frozen=True)
class BudgetSnapshot:
    has_enough: bool
    spent: Decimal
    remaining: Decimal
    limit: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {
            "spent": float(self.spent),
            "remaining": float(self.remaining),
            "limit": float(self.limit),
        }


@dataclass(frozen=True)
class Reservation:
    user_id: str
    amount: Decimal
    reservation_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class BudgetLedger(abc.ABC):
    """Accounting backend used by the try-on pipeline"""

    @property
    @abc.abstractmethod
    def limit(self) -> Decimal:
        ...

    @abc.abstractmethod
    def get_user_spending(self, user_id: str) -> Decimal:
        ...

    @abc.abstractmethod
    def check_budget(self, user_id: str, amount: Amount) -> BudgetSnapshot:
        ...

    @abc.abstractmethod
    def record_spending(self, user_id: str, amount: Amount) -> None:
        ...

    @abc.abstractmethod
    def reserve(self, user_id: str, amount: Amount) -> Optional[Reservation]:
        """Atomically hold `amount` for the user, or return None if it does not fit"""

    @abc.abstractmethod
    def commit(self, reservation: Reservation) -> None:
        ...

    @abc.abstractmethod
    def release(self, reservation: Reservation) -> None:
        ...

    @abc.abstractmethod
    def reset(self, user_id: str) -> None:
        ...

    @abc.abstractmethod
    def reset_all(self) -> None:
        ...

    @abc.abstractmethod
    def get_all_spending(self) -> List[Dict[str, object]]:
        ...

    def get_remaining_budget(self, user_id: str) -> Decimal:
        return max(Decimal("0"), self.limit - self.get_user_spending(user_id))


class InMemoryBudgetLedger(BudgetLedger):
    """Process-local ledger keyed by user id"""

    def __init__(self, limit: Amount = PER_USER_LIMIT):
        self._limit = to_decimal(limit)
        self._spent: Dict[str, Decimal] = {}
        self._pending: Dict[str, Dict[str, Decimal]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @property
    def limit(self) -> Decimal:
        return self._limit

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def get_user_spending(self, user_id: str) -> Decimal:
        return self._spent.get(user_id, Decimal("0"))

    def get_pending(self, user_id: str) -> Decimal:
        return sum(self._pending.get(user_id, {}).values(), Decimal("0"))

    def check_budget(self, user_id: str, amount: Amount) -> BudgetSnapshot:
        spent = self.get_user_spending(user_id)
        remaining = self._limit - spent
        return BudgetSnapshot(
            has_enough=remaining >= to_decimal(amount),
            spent=spent,
            remaining=max(Decimal("0"), remaining),
            limit=self._limit,
        )

    def record_spending(self, user_id: str, amount: Amount) -> None:
        with self._lock_for(user_id):
            self._spent[user_id] = self.get_user_spending(user_id) + to_decimal(amount)

    def reserve(self, user_id: str, amount: Amount) -> Optional[Reservation]:
        amount = to_decimal(amount)
        with self._lock_for(user_id):
            committed = self.get_user_spending(user_id) + self.get_pending(user_id)
            if self._limit - committed < amount:
                return None
            reservation = Reservation(user_id=user_id, amount=amount)
            self._pending.setdefault(user_id, {})[reservation.reservation_id] = amount
        logger.info(f"Reserved {amount} for user {user_id} ({reservation.reservation_id})")
        return reservation

    def commit(self, reservation: Reservation) -> None:
        with self._lock_for(reservation.user_id):
            pending = self._pending.get(reservation.user_id, {})
            if pending.pop(reservation.reservation_id, None) is None:
                # Pending entry dropped by reset() mid-request
                logger.warning(f"Committing reservation {reservation.reservation_id} for user {reservation.user_id} that is no longer pending")
            if not pending:
                self._pending.pop(reservation.user_id, None)
            self._spent[reservation.user_id] = self.get_user_spending(reservation.user_id) + reservation.amount
        logger.info(f"Committed {reservation.amount} for user {reservation.user_id}")

    def release(self, reservation: Reservation) -> None:
        with self._lock_for(reservation.user_id):
            pending = self._pending.get(reservation.user_id, {})
            pending.pop(reservation.reservation_id, None)
            if not pending:
                self._pending.pop(reservation.user_id, None)
        logger.info(f"Released {reservation.amount} for user {reservation.user_id}")

    def reset(self, user_id: str) -> None:
        with self._lock_for(user_id):
            self._spent.pop(user_id, None)
            self._pending.pop(user_id, None)
        with self._registry_lock:
            self._locks.pop(user_id, None)

    def reset_all(self) -> None:
        with self._registry_lock:
            self._spent.clear()
            self._pending.clear()
            self._locks.clear()

    def get_all_spending(self) -> List[Dict[str, object]]:
        return [
            {
                "userId": user_id,
                "spent": float(spent),
                "remaining": float(max(Decimal("0"), self._limit - spent)),
            }
            for user_id, spent in self._spent.items()
        ]
