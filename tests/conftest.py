"""Pytest configuration and fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from lending_ledger.config import LendingConfig
from lending_ledger.loans import InstallmentStatus, LoanTerms
from lending_ledger.service import LendingService, LendingSystem
from lending_ledger.storage import InMemoryStorage


@pytest.fixture
def config() -> LendingConfig:
    """Configuration with an in-memory store and auditing on."""
    return LendingConfig(database_url="memory://", currency="PHP", enable_audit_logging=True)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def system(storage, config) -> LendingSystem:
    """Ledger components wired to the in-memory storage."""
    return LendingSystem(storage=storage, config=config)


@pytest.fixture
def service(system) -> LendingService:
    return LendingService(system)


@pytest.fixture
def customer(system):
    """Registered borrower."""
    return system.customer_directory.register_customer(
        first_name="Maria", middle_name="Santos", last_name="Cruz",
        contact="09171234567", address="Quezon City",
        customer_id="cust-test-001"
    )


@pytest.fixture
def make_loan(system, customer):
    """Factory creating a loan through the schedule generator."""
    def _make_loan(months=3, gross_receivable=Decimal('300'), loan_start=date(2024, 1, 15), **overrides):
        terms = LoanTerms(
            customer_id=overrides.pop("customer_id", customer.id),
            loan_start=loan_start,
            months=months,
            transaction_date=overrides.pop("transaction_date", loan_start),
            loan_amount=overrides.pop("loan_amount", gross_receivable),
            interest=overrides.pop("interest", Decimal('0')),
            gross_receivable=gross_receivable,
            **overrides
        )
        return system.schedule_generator.create_loan(terms)
    return _make_loan


@pytest.fixture
def set_installments(system):
    """Force installment state directly, for setting up ledger scenarios."""
    def _set(loan_id, states):
        installments = system.loan_manager.get_installments(loan_id)
        for installment, (amount, paid) in zip(installments, states):
            installment.amount = Decimal(str(amount))
            installment.status = InstallmentStatus.PAID if paid else InstallmentStatus.NOT_PAID
            system.loan_manager.save_installment(installment)
        return system.loan_manager.get_installments(loan_id)
    return _set
