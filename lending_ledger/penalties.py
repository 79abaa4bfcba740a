"""
Penalty Injector

Raises the amount due on one installment of a loan and records the
adjustment in the payment ledger under the "Penalty" method. The penalty
lands on the earliest installment not yet paid, or on the last installment
when every one is paid. A paid installment that receives a penalty keeps
its Paid status.
"""

from decimal import Decimal
from datetime import date, datetime, time
from dataclasses import dataclass
from typing import Optional, Union
import logging

from .currency import Currency, ZERO, to_amount
from .audit import AuditTrail, AuditEventType
from .errors import InvalidStateError, RequestValidationError
from .ledger import PENALTY_METHOD, LedgerEntry, PaymentLedger
from .loans import Installment, InstallmentStatus, LoanManager
from .reconciliation import BalanceReconciler, Reconciliation


logger = logging.getLogger(__name__)


@dataclass
class PenaltyResult:
    """Where a penalty landed and what it did"""
    loan_id: str
    installment: Installment
    amount: Decimal
    total_penalty: Decimal
    entry: LedgerEntry
    reconciliation: Optional[Reconciliation] = None


class PenaltyInjector:
    """Adds penalties onto installments"""

    def __init__(
        self,
        loan_manager: LoanManager,
        ledger: PaymentLedger,
        reconciler: BalanceReconciler,
        audit_trail: AuditTrail,
        currency: Currency = Currency.PHP
    ):
        self.loan_manager = loan_manager
        self.storage = loan_manager.storage
        self.ledger = ledger
        self.reconciler = reconciler
        self.audit_trail = audit_trail
        self.currency = currency

    @staticmethod
    def select_target(installments) -> Installment:
        """First installment not Paid, else the last one"""
        for installment in installments:
            if installment.status != InstallmentStatus.PAID:
                return installment
        return installments[-1]

    def add_penalty(
        self,
        loan_id: str,
        amount: Union[Decimal, str, int],
        reason: str,
        transaction_date: Union[date, datetime]
    ) -> PenaltyResult:
        """
        Add a penalty to a loan

        Args:
            loan_id: Loan to penalize
            amount: Positive penalty amount
            reason: Recorded as the ledger entry's note
            transaction_date: Date of the penalty

        Raises:
            NotFoundError: If the loan does not exist
            InvalidStateError: If the loan is completed or cancelled, or has no installments
            RequestValidationError: If the amount is not a positive number
        """
        try:
            amount = to_amount(amount, self.currency)
        except ValueError as e:
            raise RequestValidationError(str(e)) from e
        if amount <= ZERO:
            raise RequestValidationError("Penalty amount must be positive")
        if isinstance(transaction_date, datetime):
            transaction_time = transaction_date
        else:
            transaction_time = datetime.combine(transaction_date, time.min)

        with self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            if not loan.accepts_penalties:
                raise InvalidStateError("Cannot add penalty to completed or cancelled loan",
                                        {"loan_id": loan_id, "status": loan.status.value})

            installments = self.loan_manager.get_installments(loan_id)
            if not installments:
                raise InvalidStateError("No payment schedule found for this loan",
                                        {"loan_id": loan_id})

            target = self.select_target(installments)
            if target.original_to_pay is None:
                target.original_to_pay = target.to_pay
            target.to_pay += amount
            self.loan_manager.save_installment(target)

            loan.penalty += amount
            self.loan_manager.save_loan(loan)

            entry = self.ledger.append(
                loan_id=loan_id,
                installment_id=target.id,
                amount=amount,
                payment_method=PENALTY_METHOD,
                notes=reason,
                transaction_time=transaction_time
            )

            reconciliation = self.reconciler.reconcile(loan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PENALTY_ADDED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "installment_id": target.id,
                    "installment_number": target.installment_number,
                    "amount": amount,
                    "total_penalty": loan.penalty,
                    "reason": reason
                }
            )

        logger.info("Penalty of %s added to installment %s of loan %s; total penalty %s",
                    amount, target.installment_number, loan_id, loan.penalty)
        return PenaltyResult(
            loan_id=loan_id,
            installment=target,
            amount=amount,
            total_penalty=loan.penalty,
            entry=entry,
            reconciliation=reconciliation
        )
