"""
Payment Allocator

Applies one payment across a loan's installments as a waterfall, starting
at the installment the caller names and walking forward in schedule order:

    for each installment from the starting one onward, while money remains:
        skip it if Paid or nothing is owed
        apply min(still owed, remaining)
        mark Paid once amount reaches to_pay
        append one ledger entry for the step

Installments before the starting one are never touched, even when they are
still owed. Whatever is left after the last installment is not credited
anywhere; it is reported back as ``unapplied``.

The whole walk, the ledger appends and the reconciliation run in one
``storage.atomic()`` block, so two payments on the same loan cannot both
read the same installment state.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import List, Optional, Union
import logging

from .currency import Currency, ZERO, to_amount
from .audit import AuditTrail, AuditEventType
from .errors import NotFoundError, RequestValidationError
from .ledger import LedgerEntry, PaymentLedger
from .loans import InstallmentStatus, LoanManager, LoanStatus
from .reconciliation import BalanceReconciler, Reconciliation


logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """What a payment did to a loan"""
    loan_id: str
    starting_installment_id: str
    amount: Decimal
    applied: Decimal
    unapplied: Decimal
    entries: List[LedgerEntry] = field(default_factory=list)
    reconciliation: Optional[Reconciliation] = None

    @property
    def completed(self) -> bool:
        return (self.reconciliation is not None
                and self.reconciliation.status == LoanStatus.COMPLETED)


class PaymentAllocator:
    """Waterfall allocation of payments onto installments"""

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

    def apply_payment(
        self,
        starting_installment_id: str,
        amount: Union[Decimal, str, int],
        transaction_time: datetime,
        loan_id: str,
        method: str = "Cash",
        notes: str = ""
    ) -> AllocationResult:
        """
        Apply a payment to a loan starting at one installment

        Args:
            starting_installment_id: Installment the payment nominally pays first
            amount: Positive payment amount; strings such as "PHP 1,250.50" are accepted
            transaction_time: When the payment was received
            loan_id: Loan being paid
            method: Payment method recorded on every ledger entry
            notes: Free-text note recorded on every ledger entry

        Returns:
            AllocationResult with applied/unapplied amounts and the new entries

        Raises:
            NotFoundError: If the loan or the starting installment does not exist
            RequestValidationError: If the amount is not a positive number
        """
        try:
            amount = to_amount(amount, self.currency)
        except ValueError as e:
            raise RequestValidationError(str(e)) from e
        if amount <= ZERO:
            raise RequestValidationError("Payment amount must be positive")
        remaining = amount
        entries: List[LedgerEntry] = []

        with self.storage.atomic():
            self.loan_manager.require_loan(loan_id)
            starting = self.loan_manager.get_installment(starting_installment_id)
            if not starting:
                raise NotFoundError("installment", starting_installment_id)
            if starting.loan_id != loan_id:
                logger.warning(
                    "Installment %s belongs to loan %s, not %s; nothing will be applied",
                    starting_installment_id, starting.loan_id, loan_id
                )

            found_start = False
            for installment in self.loan_manager.get_installments(loan_id):
                if remaining <= ZERO:
                    break
                if not found_start and installment.id == starting_installment_id:
                    found_start = True
                if not found_start:
                    continue
                if installment.status == InstallmentStatus.PAID:
                    continue

                still_owed = installment.still_owed
                if still_owed <= ZERO:
                    continue

                apply_amount = min(still_owed, remaining)
                installment.amount += apply_amount
                installment.status = (InstallmentStatus.PAID
                                      if installment.amount >= installment.to_pay
                                      else InstallmentStatus.NOT_PAID)
                installment.transaction_time = transaction_time
                self.loan_manager.save_installment(installment)

                entries.append(self.ledger.append(
                    loan_id=loan_id,
                    installment_id=installment.id,
                    amount=apply_amount,
                    payment_method=method,
                    notes=notes,
                    transaction_time=transaction_time
                ))
                remaining -= apply_amount

                logger.debug("Applied %s to installment %s (amount=%s, status=%s)",
                             apply_amount, installment.id, installment.amount,
                             installment.status.value)

            if remaining > ZERO:
                logger.warning("Payment on loan %s left %s unapplied", loan_id, remaining)

            reconciliation = self.reconciler.reconcile(loan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_APPLIED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "starting_installment_id": starting_installment_id,
                    "amount": amount,
                    "applied": amount - remaining,
                    "unapplied": remaining,
                    "method": method,
                    "installments": [e.installment_id for e in entries],
                    "transaction_time": transaction_time
                }
            )

        logger.info("Payment of %s on loan %s: applied %s across %d installments",
                    amount, loan_id, amount - remaining, len(entries))
        return AllocationResult(
            loan_id=loan_id,
            starting_installment_id=starting_installment_id,
            amount=amount,
            applied=amount - remaining,
            unapplied=remaining,
            entries=entries,
            reconciliation=reconciliation
        )
