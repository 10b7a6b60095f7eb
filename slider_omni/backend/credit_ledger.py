# monthly omnitoken/omnicoin allowance
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from .config import OMNITOKENS_BASELINE, OMNICOINS_BASELINE
from .database import utcnow
from .models import CreditCounter, UserRecord
from .users import UserRepository

logger = logging.getLogger(__name__)


def needs_reset(last_reset: Optional[datetime], now: datetime) -> bool:
    """True when last_reset falls in an earlier (or later) UTC calendar month than now"""
    if last_reset is None:
        return True
    if last_reset.tzinfo is None:
        last_reset = last_reset.replace(tzinfo=timezone.utc)
    last = last_reset.astimezone(timezone.utc)
    current = now.astimezone(timezone.utc)
    return (last.year, last.month) != (current.year, current.month)


def _reset_to_baseline(user: UserRecord, now: datetime) -> UserRecord:
    return user.model_copy(update={
        "omnitokens": OMNITOKENS_BASELINE,
        "omnicoins": OMNICOINS_BASELINE,
        "last_reset": now,
    })


# credit ledger: every read-modify-write runs inside one repository mutation
class CreditLedger:
    def __init__(self, users: UserRepository, clock: Callable[[], datetime] = utcnow):
        self.users = users
        self.clock = clock

    def _apply_monthly_reset(self, user: UserRecord, now: datetime) -> UserRecord:
        if needs_reset(user.last_reset, now):
            logger.info(f"Monthly credit reset for {user.username}")
            return _reset_to_baseline(user, now)
        return user

    def charge(self, username: str, counter: CreditCounter, amount: int = 1) -> bool:
        """Decrement one counter by amount if the balance allows it.

        The monthly reset check runs first, in the same atomic step. A failed
        charge leaves the counters untouched (apart from that reset).
        Unknown users are reported as a failed charge.
        """
        if amount <= 0:
            raise ValueError("amount must be positive")
        counter = CreditCounter(counter)
        field = "omnitokens" if counter == CreditCounter.TOKENS else "omnicoins"
        now = self.clock()

        def mutation(user: UserRecord) -> Tuple[UserRecord, bool]:
            user = self._apply_monthly_reset(user, now)
            balance = getattr(user, field)
            if balance < amount:
                return user, False
            return user.model_copy(update={field: balance - amount}), True

        ok = self.users.mutate_credits(username, mutation)
        if ok is None:
            logger.warning(f"Charge against unknown user {username}")
            return False
        if ok:
            logger.info(f"Charged {amount} {counter.value} to {username}")
        else:
            logger.info(f"Insufficient {counter.value} for {username}")
        return ok

    def ensure_monthly_reset(self, username: str) -> bool:
        """Apply the reset if due; returns whether the user exists"""
        now = self.clock()
        result = self.users.mutate_credits(
            username, lambda user: (self._apply_monthly_reset(user, now), True)
        )
        return bool(result)

    def reset(self, username: str) -> bool:
        """Admin reset to baseline regardless of month"""
        now = self.clock()
        result = self.users.mutate_credits(username, lambda user: (_reset_to_baseline(user, now), True))
        if result:
            logger.info(f"Credits reset for {username}")
        return bool(result)

    def balances(self, username: str) -> Optional[Dict[str, int]]:
        """Current balances with the monthly reset applied"""
        now = self.clock()

        def mutation(user: UserRecord):
            user = self._apply_monthly_reset(user, now)
            return user, {"omnitokens": user.omnitokens, "omnicoins": user.omnicoins}

        return self.users.mutate_credits(username, mutation)
