"""
Loan Module

Loan and installment records, their persisted status vocabularies, and the
LoanManager that stores them and performs the explicit lifecycle
transitions (cancel, soft delete, direct status change).

A loan's ``overall_balance`` and derived ``status`` are owned by the
reconciler; nothing in this module computes them.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import calendar
import logging

from .currency import ZERO
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import InvalidStateError, NotFoundError


logger = logging.getLogger(__name__)


class LoanStatus(Enum):
    """Loan lifecycle states, stored as these exact strings"""
    RECENTLY_ADDED = "Recently Added"  # Created, no payment or penalty yet
    ACTIVE = "Active"                  # Reconciled, nothing paid
    PARTIAL = "Partial"                # Some amount paid
    COMPLETED = "Completed"            # Every installment paid
    CANCELLED = "Cancelled"            # Explicitly cancelled
    DELETED = "Deleted"                # Soft-deleted

    @property
    def is_terminal_action(self) -> bool:
        """States only reachable through an explicit lifecycle action"""
        return self in (LoanStatus.CANCELLED, LoanStatus.DELETED)


class InstallmentStatus(Enum):
    """Installment payment status"""
    NOT_PAID = "Not Paid"
    PAID = "Paid"


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class LoanTerms:
    """Origination inputs for a loan"""
    customer_id: str
    loan_start: date
    months: int
    transaction_date: date
    loan_amount: Decimal
    interest: Decimal                         # e.g. 0.05 for 5% over the term
    gross_receivable: Optional[Decimal] = None  # Total owed; derived when omitted
    loan_end: Optional[date] = None
    payday_payment: Decimal = ZERO
    service: Decimal = ZERO
    adjustment: Decimal = ZERO
    penalty: Decimal = ZERO

    def __post_init__(self):
        if self.months < 1:
            raise ValueError("Loan term must be at least one month")
        if self.gross_receivable is None:
            self.gross_receivable = self.loan_amount + self.loan_amount * self.interest
        if self.loan_end is None:
            self.loan_end = add_months(self.loan_start, self.months)


@dataclass
class Loan(StorageRecord):
    """Loan header with origination terms and derived balance/status"""
    customer_id: str
    loan_start: date
    months: int
    loan_end: date
    transaction_date: date
    loan_amount: Decimal
    interest: Decimal
    gross_receivable: Decimal
    payday_payment: Decimal = ZERO
    service: Decimal = ZERO
    adjustment: Decimal = ZERO
    penalty: Decimal = ZERO            # Cumulative penalties injected
    overall_balance: Decimal = ZERO    # Written only by the reconciler
    status: LoanStatus = LoanStatus.RECENTLY_ADDED

    @property
    def accepts_penalties(self) -> bool:
        return self.status not in (LoanStatus.COMPLETED, LoanStatus.CANCELLED)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        for field_name in ('loan_start', 'loan_end', 'transaction_date'):
            data[field_name] = _parse_date(data[field_name])
        for field_name in ('loan_amount', 'interest', 'gross_receivable', 'payday_payment',
                           'service', 'adjustment', 'penalty', 'overall_balance'):
            data[field_name] = _parse_decimal(data[field_name])
        data['status'] = LoanStatus(data['status'])
        return super().from_dict(data)


@dataclass
class Installment(StorageRecord):
    """
    One scheduled due amount of a loan ("receipt")

    ``to_pay`` only grows (penalties), ``amount`` only grows (payments) and
    never exceeds ``to_pay``; ``original_to_pay`` is written once, by the
    first penalty that touches the installment.
    """
    loan_id: str
    installment_number: int            # 1-based position in the schedule
    schedule: date                     # Due date
    to_pay: Decimal
    amount: Decimal = ZERO
    original_to_pay: Optional[Decimal] = None
    status: InstallmentStatus = InstallmentStatus.NOT_PAID
    transaction_time: Optional[datetime] = None  # Last payment applied

    @property
    def still_owed(self) -> Decimal:
        return self.to_pay - self.amount

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        data['schedule'] = _parse_date(data['schedule'])
        data['to_pay'] = _parse_decimal(data['to_pay'])
        data['amount'] = _parse_decimal(data['amount'])
        data['original_to_pay'] = _parse_decimal(data.get('original_to_pay'))
        data['status'] = InstallmentStatus(data['status'])
        data['transaction_time'] = _parse_datetime(data.get('transaction_time'))
        return super().from_dict(data)


class LoanManager:
    """
    Stores loans and installments and performs explicit lifecycle transitions
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail

        self.loans_table = "loans"
        self.installments_table = "installments"

    # Loans

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        loan_dict = self.storage.load(self.loans_table, loan_id)
        if loan_dict:
            return Loan.from_dict(loan_dict)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        """Get loan by ID or raise NotFoundError"""
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError("loan", loan_id)
        return loan

    def save_loan(self, loan: Loan) -> None:
        loan.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def list_loans(self, include_deleted: bool = False) -> List[Loan]:
        """All loans in creation order, soft-deleted ones excluded by default"""
        loans = [Loan.from_dict(data) for data in self.storage.load_all(self.loans_table)]
        if include_deleted:
            return loans
        return [loan for loan in loans if loan.status != LoanStatus.DELETED]

    def list_customer_loans(self, customer_id: str,
                            status: Optional[LoanStatus] = None) -> List[Loan]:
        """Loans of one customer, optionally restricted to a status"""
        filters = {"customer_id": customer_id}
        if status:
            filters["status"] = status.value
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        if status:
            return loans
        return [loan for loan in loans if loan.status != LoanStatus.DELETED]

    # Installments

    def get_installment(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.installments_table, installment_id)
        if data:
            return Installment.from_dict(data)
        return None

    def get_installments(self, loan_id: str) -> List[Installment]:
        """Installments of a loan in schedule order"""
        installments = [
            Installment.from_dict(data)
            for data in self.storage.find(self.installments_table, {"loan_id": loan_id})
        ]
        installments.sort(key=lambda i: i.installment_number)
        return installments

    def save_installment(self, installment: Installment) -> None:
        installment.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.installments_table, installment.id, installment.to_dict())

    # Lifecycle transitions

    def cancel_loan(self, loan_id: str) -> Loan:
        """
        Cancel a loan

        Raises:
            NotFoundError: If the loan does not exist
            InvalidStateError: If the loan is already completed
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status == LoanStatus.COMPLETED:
                raise InvalidStateError("Cannot cancel a completed loan",
                                        {"loan_id": loan_id, "status": loan.status.value})

            previous_status = loan.status
            loan.status = LoanStatus.CANCELLED
            self.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CANCELLED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"previous_status": previous_status}
            )

        logger.info("Loan %s cancelled (was %s)", loan_id, previous_status.value)
        return loan

    def soft_delete_loan(self, loan_id: str) -> Loan:
        """Flag a loan as deleted; the loan and its ledger stay stored"""
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            previous_status = loan.status
            loan.status = LoanStatus.DELETED
            self.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"previous_status": previous_status}
            )

        logger.info("Loan %s soft-deleted", loan_id)
        return loan

    def set_status(self, loan_id: str, status: LoanStatus) -> Loan:
        """Overwrite a loan's status directly"""
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            previous_status = loan.status
            loan.status = status
            self.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_STATUS_CHANGED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "previous_status": previous_status,
                    "new_status": status,
                    "source": "manual"
                }
            )

        logger.info("Loan %s status set to %s", loan_id, status.value)
        return loan
