# smartaudit/services/credits.py
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from smartaudit.core import tiers
from smartaudit.models import db
from smartaudit.models.credits import CreditTransaction, UserCredits

logger = logging.getLogger(__name__)


class InsufficientCredits(Exception):
    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient credits. Need {required}, have {available}")
        self.required = required
        self.available = available


class PlanRestricted(Exception):
    def __init__(self, plan_required: str, message: Optional[str] = None):
        super().__init__(message or f"This feature requires the {plan_required} plan")
        self.plan_required = plan_required


@dataclass
class LedgerEntry:
    user_id: str
    kind: str          # initial|deduction|refund|purchase|bonus
    amount: int        # negative for deductions
    reason: str
    balance_after: int
    session_id: Optional[str] = None


class CreditLedger(ABC):
    """Billing collaborator; the audit service only needs these operations."""

    @abstractmethod
    def balance(self, user_id: str) -> int: ...

    @abstractmethod
    def total_earned(self, user_id: str) -> int: ...

    @abstractmethod
    def deduct(self, user_id: str, amount: int, session_id: Optional[str], reason: str) -> int:
        """Charge ``amount``; returns the new balance or raises InsufficientCredits."""

    @abstractmethod
    def refund(self, user_id: str, amount: int, session_id: Optional[str], reason: str) -> int: ...

    def plan_tier(self, user_id: str) -> str:
        return tiers.tier_for(self.total_earned(user_id))


class InMemoryCreditLedger(CreditLedger):
    """Process-local ledger for tests and single-process runs. New users start with the free grant."""

    def __init__(self, initial_credits: int = tiers.INITIAL_CREDITS,
                 explicit_tiers: Optional[Dict[str, str]] = None):
        self.initial_credits = initial_credits
        self._explicit_tiers = dict(explicit_tiers or {})
        self._balances: Dict[str, int] = {}
        self._earned: Dict[str, int] = {}
        self._entries: List[LedgerEntry] = []
        self._lock = threading.Lock()

    def _ensure(self, user_id: str) -> None:
        if user_id not in self._balances:
            self._balances[user_id] = self.initial_credits
            self._earned[user_id] = self.initial_credits
            self._entries.append(LedgerEntry(user_id, "initial", self.initial_credits,
                                             "Initial free credits", self.initial_credits))

    def balance(self, user_id):
        with self._lock:
            self._ensure(user_id)
            return self._balances[user_id]

    def total_earned(self, user_id):
        with self._lock:
            self._ensure(user_id)
            return self._earned[user_id]

    def plan_tier(self, user_id):
        return tiers.tier_for(self.total_earned(user_id), self._explicit_tiers.get(user_id))

    def add(self, user_id: str, amount: int, kind: str = "purchase", reason: str = "Credit purchase") -> int:
        with self._lock:
            self._ensure(user_id)
            self._balances[user_id] += amount
            self._earned[user_id] += amount
            bal = self._balances[user_id]
            self._entries.append(LedgerEntry(user_id, kind, amount, reason, bal))
            return bal

    def deduct(self, user_id, amount, session_id, reason):
        with self._lock:
            self._ensure(user_id)
            current = self._balances[user_id]
            if current < amount:
                raise InsufficientCredits(amount, current)
            self._balances[user_id] = current - amount
            bal = self._balances[user_id]
            self._entries.append(LedgerEntry(user_id, "deduction", -amount, reason, bal, session_id))
        logger.info("Deducted %s credits from %s (session %s)", amount, user_id, session_id)
        return bal

    def refund(self, user_id, amount, session_id, reason):
        if amount <= 0:
            return self.balance(user_id)
        with self._lock:
            self._ensure(user_id)
            self._balances[user_id] += amount
            bal = self._balances[user_id]
            self._entries.append(LedgerEntry(user_id, "refund", amount, reason, bal, session_id))
        logger.info("Refunded %s credits to %s (session %s)", amount, user_id, session_id)
        return bal

    def transactions(self, user_id: str) -> List[LedgerEntry]:
        with self._lock:
            return [e for e in self._entries if e.user_id == user_id]


class SqlCreditLedger(CreditLedger):
    """
    Ledger on the service database (``user_credits`` + ``credit_transactions``).

    The web process charges at submission and the Celery worker refunds on
    failure; both read and write the same rows. A charge is one conditional
    UPDATE on ``balance >= amount``. Needs an app context.
    """

    def __init__(self, initial_credits: int = tiers.INITIAL_CREDITS):
        self.initial_credits = initial_credits

    def _account(self, user_id: str) -> UserCredits:
        acct = db.session.get(UserCredits, user_id)
        if acct is not None:
            return acct
        acct = UserCredits(user_id=user_id, balance=self.initial_credits,
                           total_earned=self.initial_credits)
        try:
            db.session.add(acct)
            db.session.flush()
            db.session.add(CreditTransaction(user_id=user_id, kind="initial", amount=self.initial_credits,
                                             reason="Initial free credits",
                                             balance_after=self.initial_credits))
            db.session.commit()
        except IntegrityError:
            # another process opened the account first
            db.session.rollback()
            acct = db.session.get(UserCredits, user_id)
        return acct

    def _current_balance(self, user_id: str) -> int:
        return db.session.query(UserCredits.balance).filter(UserCredits.user_id == user_id).scalar()

    def balance(self, user_id):
        return self._account(user_id).balance

    def total_earned(self, user_id):
        return self._account(user_id).total_earned

    def plan_tier(self, user_id):
        acct = self._account(user_id)
        return tiers.tier_for(acct.total_earned, acct.plan_tier)

    def set_plan_tier(self, user_id: str, tier: Optional[str]) -> None:
        acct = self._account(user_id)
        acct.plan_tier = tier
        db.session.commit()

    def _apply(self, user_id, amount, kind, reason, session_id=None, earned=False, require_funds=False) -> int:
        self._account(user_id)
        values = {UserCredits.balance: UserCredits.balance + amount}
        if earned:
            values[UserCredits.total_earned] = UserCredits.total_earned + amount
        q = UserCredits.query.filter(UserCredits.user_id == user_id)
        if require_funds:
            q = q.filter(UserCredits.balance >= -amount)
        try:
            if q.update(values, synchronize_session=False) != 1:
                db.session.rollback()
                raise InsufficientCredits(-amount, self._current_balance(user_id))
            bal = self._current_balance(user_id)
            db.session.add(CreditTransaction(user_id=user_id, kind=kind, amount=amount, reason=reason,
                                             balance_after=bal, session_id=session_id))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return bal

    def add(self, user_id: str, amount: int, kind: str = "purchase", reason: str = "Credit purchase") -> int:
        return self._apply(user_id, amount, kind, reason, earned=True)

    def deduct(self, user_id, amount, session_id, reason):
        bal = self._apply(user_id, -amount, "deduction", reason, session_id, require_funds=True)
        logger.info("Deducted %s credits from %s (session %s)", amount, user_id, session_id,
                    extra={"session_id": session_id})
        return bal

    def refund(self, user_id, amount, session_id, reason):
        if amount <= 0:
            return self.balance(user_id)
        bal = self._apply(user_id, amount, "refund", reason, session_id)
        logger.info("Refunded %s credits to %s (session %s)", amount, user_id, session_id,
                    extra={"session_id": session_id})
        return bal

    def transactions(self, user_id: str) -> List[CreditTransaction]:
        return (
            CreditTransaction.query
            .filter(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.id.asc())
            .all()
        )
