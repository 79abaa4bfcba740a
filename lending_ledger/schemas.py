"""
Pydantic schemas for ledger operation requests

Each exposed operation validates its input with one of these models before
any engine code runs. Amount fields accept formatted strings such as
"PHP 1,250.50".
"""

from decimal import Decimal
from datetime import date, datetime, time
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from .currency import decimal_from_string
from .loans import LoanStatus, LoanTerms


def _parse_amount(value: Any) -> Any:
    if isinstance(value, str):
        return decimal_from_string(value)
    return value


class CreateLoanRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)
    loan_start: date
    months: int = Field(..., ge=1, description="Number of monthly installments")
    loan_end: Optional[date] = None
    transaction_date: date
    loan_amount: Decimal = Field(..., gt=0)
    interest: Decimal = Field(..., ge=0, description="Interest over the whole term, 0.05 for 5%")
    gross_receivable: Optional[Decimal] = Field(None, gt=0, description="Total owed; loan_amount * (1 + interest) when omitted")
    payday_payment: Decimal = Decimal('0')
    service: Decimal = Decimal('0')
    adjustment: Decimal = Decimal('0')
    penalty: Decimal = Field(Decimal('0'), ge=0)

    @field_validator('loan_amount', 'gross_receivable', 'payday_payment', 'service',
                     'adjustment', 'penalty', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return _parse_amount(v)

    @model_validator(mode="after")
    def check_dates(self) -> 'CreateLoanRequest':
        if self.loan_end is not None and self.loan_end < self.loan_start:
            raise ValueError("loan_end must not be before loan_start")
        return self

    def to_loan_terms(self) -> LoanTerms:
        return LoanTerms(
            customer_id=self.customer_id,
            loan_start=self.loan_start,
            months=self.months,
            loan_end=self.loan_end,
            transaction_date=self.transaction_date,
            loan_amount=self.loan_amount,
            interest=self.interest,
            gross_receivable=self.gross_receivable,
            payday_payment=self.payday_payment,
            service=self.service,
            adjustment=self.adjustment,
            penalty=self.penalty
        )


class ApplyPaymentRequest(BaseModel):
    starting_installment_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    transaction_time: datetime
    method: Optional[str] = None
    notes: Optional[str] = None
    loan_id: str = Field(..., min_length=1)

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return _parse_amount(v)


class AddPenaltyRequest(BaseModel):
    loan_id: str = Field(..., min_length=1)
    penalty_amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    transaction_date: datetime = Field(..., description="A date means midnight of that day")

    @field_validator('penalty_amount', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return _parse_amount(v)

    @field_validator('transaction_date', mode='before')
    @classmethod
    def date_to_midnight(cls, v):
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime.combine(v, time.min)
        if isinstance(v, str) and len(v) == 10:
            return datetime.combine(date.fromisoformat(v), time.min)
        return v


class SetStatusRequest(BaseModel):
    loan_id: str = Field(..., min_length=1)
    status: LoanStatus
