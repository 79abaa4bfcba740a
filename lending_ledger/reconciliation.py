"""
Balance Reconciler / Status Deriver

Recomputes a loan's outstanding balance and status from its installments
alone. Running it twice without an intervening mutation yields the same
result; it is the only writer of ``overall_balance``.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import List, Optional
import logging

from .currency import ZERO
from .loans import Installment, InstallmentStatus, LoanManager, LoanStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of reconciling one loan"""
    loan_id: str
    total_due: Decimal
    total_paid: Decimal
    overall_balance: Decimal
    status: LoanStatus
    previous_status: LoanStatus

    @property
    def status_changed(self) -> bool:
        return self.status != self.previous_status


def derive_balance(installments: List[Installment]) -> Decimal:
    """max(0, sum of to_pay - sum of amount), at the precision of the amounts due"""
    total_due = sum((i.to_pay for i in installments), ZERO)
    total_paid = sum((i.amount for i in installments), ZERO)
    balance = total_due - total_paid
    if balance < ZERO:
        return ZERO.quantize(total_due)
    return balance


def derive_status(installments: List[Installment]) -> LoanStatus:
    """
    Status from installment state, in priority order:
    every installment Paid -> Completed; any amount paid -> Partial;
    otherwise Active.
    """
    if all(i.status == InstallmentStatus.PAID for i in installments):
        return LoanStatus.COMPLETED
    if any(i.amount > ZERO for i in installments):
        return LoanStatus.PARTIAL
    return LoanStatus.ACTIVE


class BalanceReconciler:
    """Writes derived balance and status back onto loans"""

    def __init__(self, loan_manager: LoanManager):
        self.loan_manager = loan_manager
        self.storage = loan_manager.storage

    def reconcile(self, loan_id: str) -> Optional[Reconciliation]:
        """
        Reconcile one loan

        Cancelled and deleted loans get a fresh balance but keep their status.

        Returns:
            The reconciliation, or None when the loan has no installments

        Raises:
            NotFoundError: If the loan does not exist
        """
        with self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            installments = self.loan_manager.get_installments(loan_id)
            if not installments:
                logger.debug("Loan %s has no installments, nothing to reconcile", loan_id)
                return None

            total_due = sum((i.to_pay for i in installments), ZERO)
            total_paid = sum((i.amount for i in installments), ZERO)
            balance = derive_balance(installments)

            previous_status = loan.status
            if loan.status.is_terminal_action:
                status = loan.status
            else:
                status = derive_status(installments)

            if loan.overall_balance != balance or loan.status != status:
                loan.overall_balance = balance
                loan.status = status
                self.loan_manager.save_loan(loan)

        logger.info("Loan %s reconciled: balance=%s status=%s", loan_id, balance, status.value)
        return Reconciliation(
            loan_id=loan_id,
            total_due=total_due,
            total_paid=total_paid,
            overall_balance=balance,
            status=status,
            previous_status=previous_status
        )

    def reconcile_all(self) -> List[Reconciliation]:
        """
        Reconcile every stored loan, deleted ones included

        Each loan is reconciled in its own transaction.
        """
        results = []
        for loan in self.loan_manager.list_loans(include_deleted=True):
            result = self.reconcile(loan.id)
            if result:
                results.append(result)

        logger.info("Reconciled %d loans", len(results))
        return results
