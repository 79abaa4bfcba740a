"""
Schedule Generator

Turns loan terms into a loan record plus its installments at origination.
Each installment owes an equal share of the gross receivable; the rounding
remainder of that split is not moved onto any installment.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import List, Optional, Tuple
import logging
import uuid

from .currency import Currency, ZERO, round_amount
from .audit import AuditTrail, AuditEventType
from .customers import CustomerDirectory
from .errors import NotFoundError
from .loans import Installment, InstallmentStatus, Loan, LoanManager, LoanStatus, LoanTerms, add_months


logger = logging.getLogger(__name__)


class ScheduleGenerator:
    """Creates a loan and its installment schedule in one transaction"""

    def __init__(
        self,
        loan_manager: LoanManager,
        customer_directory: Optional[CustomerDirectory],
        audit_trail: AuditTrail,
        currency: Currency = Currency.PHP
    ):
        self.loan_manager = loan_manager
        self.storage = loan_manager.storage
        self.customer_directory = customer_directory
        self.audit_trail = audit_trail
        self.currency = currency

    def installment_amount(self, gross_receivable: Decimal, months: int) -> Decimal:
        """Equal share of the gross receivable, rounded to currency precision"""
        return round_amount(gross_receivable / Decimal(months), self.currency)

    def build_schedule(self, loan: Loan) -> List[Installment]:
        """Installments for a loan, due monthly from its start date"""
        now = datetime.now(timezone.utc)
        to_pay = self.installment_amount(loan.gross_receivable, loan.months)

        return [
            Installment(
                id=f"{loan.id}_{number}",
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                installment_number=number,
                schedule=add_months(loan.loan_start, number - 1),
                to_pay=to_pay,
                amount=ZERO,
                status=InstallmentStatus.NOT_PAID
            )
            for number in range(1, loan.months + 1)
        ]

    def create_loan(self, terms: LoanTerms) -> Tuple[Loan, List[Installment]]:
        """
        Create a loan in "Recently Added" status with ``terms.months`` installments

        Args:
            terms: Origination terms

        Returns:
            The stored loan and its installments in schedule order

        Raises:
            NotFoundError: If a customer directory is wired and does not know the customer
        """
        if self.customer_directory and not self.customer_directory.exists(terms.customer_id):
            raise NotFoundError("customer", terms.customer_id)

        now = datetime.now(timezone.utc)
        gross_receivable = round_amount(terms.gross_receivable, self.currency)

        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=terms.customer_id,
            loan_start=terms.loan_start,
            months=terms.months,
            loan_end=terms.loan_end,
            transaction_date=terms.transaction_date,
            loan_amount=round_amount(terms.loan_amount, self.currency),
            interest=terms.interest,
            gross_receivable=gross_receivable,
            payday_payment=round_amount(terms.payday_payment, self.currency),
            service=round_amount(terms.service, self.currency),
            adjustment=round_amount(terms.adjustment, self.currency),
            penalty=round_amount(terms.penalty, self.currency),
            overall_balance=gross_receivable,
            status=LoanStatus.RECENTLY_ADDED
        )
        installments = self.build_schedule(loan)

        with self.storage.atomic():
            self.loan_manager.save_loan(loan)
            for installment in installments:
                self.loan_manager.save_installment(installment)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "customer_id": loan.customer_id,
                    "loan_amount": loan.loan_amount,
                    "gross_receivable": gross_receivable,
                    "months": loan.months,
                    "installment_amount": installments[0].to_pay,
                    "loan_start": loan.loan_start
                }
            )

        logger.info("Created loan %s with %d installments of %s",
                    loan.id, len(installments), installments[0].to_pay)
        return loan, installments
