"""
Lending service facade

``LendingSystem`` owns the storage handle and wires every component to it;
``LendingService`` exposes the ledger operations consumed by the UI/HTTP
layer. Every operation validates its request, runs the engine, and either
returns a message dict or raises a LendingError.
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union
import logging

from pydantic import ValidationError

from .config import LendingConfig, get_config
from .currency import Currency
from .storage import StorageInterface, create_storage
from .audit import AuditTrail, AuditEventType
from .customers import Customer, CustomerDirectory
from .errors import InternalError, LendingError, RequestValidationError
from .ledger import PaymentLedger
from .loans import Loan, LoanManager, LoanStatus
from .schedule import ScheduleGenerator
from .reconciliation import BalanceReconciler
from .allocation import PaymentAllocator
from .penalties import PenaltyInjector
from .schemas import AddPenaltyRequest, ApplyPaymentRequest, CreateLoanRequest, SetStatusRequest
from .logging_config import log_action


logger = logging.getLogger(__name__)

T = TypeVar("T")


class LendingSystem:
    """Ledger components sharing one explicitly owned storage handle"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LendingConfig] = None):
        self.config = config or get_config()

        # A storage passed in belongs to the caller and is not closed here
        self._owns_storage = storage is None
        self.storage = storage if storage is not None else create_storage(self.config.database_url)

        try:
            self.currency = Currency[self.config.currency.upper()]
        except KeyError:
            raise ValueError(f"Unsupported currency: {self.config.currency}")

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.customer_directory = CustomerDirectory(self.storage)
        self.loan_manager = LoanManager(self.storage, self.audit_trail)
        self.ledger = PaymentLedger(self.storage)
        self.reconciler = BalanceReconciler(self.loan_manager)
        self.schedule_generator = ScheduleGenerator(
            self.loan_manager, self.customer_directory, self.audit_trail, self.currency
        )
        self.allocator = PaymentAllocator(
            self.loan_manager, self.ledger, self.reconciler, self.audit_trail, self.currency
        )
        self.penalty_injector = PenaltyInjector(
            self.loan_manager, self.ledger, self.reconciler, self.audit_trail, self.currency
        )

    def close(self) -> None:
        if self._owns_storage:
            self.storage.close()

    def __enter__(self) -> 'LendingSystem':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _loan_view(loan: Loan, customer: Optional[Customer] = None) -> Dict[str, Any]:
    view = loan.to_dict()
    if customer:
        view["first_name"] = customer.first_name
        view["middle_name"] = customer.middle_name
        view["last_name"] = customer.last_name
    return view


class LendingService:
    """The ledger operations, each returning a message dict or raising LendingError"""

    def __init__(self, system: LendingSystem):
        self.system = system

    def _execute(self, action: str, resource: str, operation: Callable[[], T]) -> T:
        try:
            result = operation()
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            log_action(logger, "warning", f"{action} rejected: invalid request",
                       action=action, resource=resource, extra={"errors": errors})
            raise RequestValidationError(f"Invalid {action} request", errors) from e
        except LendingError as e:
            log_action(logger, "warning", f"{action} failed: {e.message}",
                       action=action, resource=resource, extra={"kind": e.kind.value})
            raise
        except Exception as e:
            logger.exception("%s failed unexpectedly for %s", action, resource)
            raise InternalError(f"{action} failed: {e}") from e

        log_action(logger, "info", f"{action} succeeded", action=action, resource=resource)
        return result

    # Mutations

    def create_loan(self, **terms: Any) -> Dict[str, Any]:
        """Run the schedule generator for a new loan"""
        def operation():
            request = CreateLoanRequest(**terms)
            loan, installments = self.system.schedule_generator.create_loan(request.to_loan_terms())
            return {
                "message": "Loan has been added successfully",
                "loan_id": loan.id,
                "installments": len(installments),
                "installment_amount": str(installments[0].to_pay)
            }
        return self._execute("create_loan", f"customer:{terms.get('customer_id')}", operation)

    def apply_payment(
        self,
        starting_installment_id: str,
        amount: Union[Decimal, str, int],
        transaction_time: Union[datetime, str],
        loan_id: str,
        method: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """Run the payment allocator"""
        def operation():
            request = ApplyPaymentRequest(
                starting_installment_id=starting_installment_id,
                amount=amount,
                transaction_time=transaction_time,
                method=method,
                notes=notes,
                loan_id=loan_id
            )
            result = self.system.allocator.apply_payment(
                starting_installment_id=request.starting_installment_id,
                amount=request.amount,
                transaction_time=request.transaction_time,
                loan_id=request.loan_id,
                method=request.method or self.system.config.default_payment_method,
                notes=request.notes or ""
            )
            if result.completed:
                message = ("Payment processed successfully. All payments completed - "
                           "loan marked as completed.")
            else:
                message = "Payment processed successfully with balance and receipts updated."

            response = {
                "message": message,
                "loan_id": result.loan_id,
                "applied": str(result.applied),
                "unapplied": str(result.unapplied),
                "ledger_entry_ids": [entry.id for entry in result.entries]
            }
            if result.reconciliation:
                response["overall_balance"] = str(result.reconciliation.overall_balance)
                response["status"] = result.reconciliation.status.value
            return response
        return self._execute("apply_payment", f"loan:{loan_id}", operation)

    def add_penalty(
        self,
        loan_id: str,
        penalty_amount: Union[Decimal, str, int],
        reason: str,
        transaction_date: Union[date, datetime, str]
    ) -> Dict[str, Any]:
        """Run the penalty injector"""
        def operation():
            request = AddPenaltyRequest(
                loan_id=loan_id,
                penalty_amount=penalty_amount,
                reason=reason,
                transaction_date=transaction_date
            )
            result = self.system.penalty_injector.add_penalty(
                loan_id=request.loan_id,
                amount=request.penalty_amount,
                reason=request.reason,
                transaction_date=request.transaction_date
            )
            response = {
                "message": "Penalty added successfully",
                "loan_id": result.loan_id,
                "installment_id": result.installment.id,
                "installment_number": result.installment.installment_number,
                "total_penalty": str(result.total_penalty)
            }
            if result.reconciliation:
                response["overall_balance"] = str(result.reconciliation.overall_balance)
            return response
        return self._execute("add_penalty", f"loan:{loan_id}", operation)

    def recalculate_all_balances(self) -> Dict[str, Any]:
        """Reconcile every loan"""
        def operation():
            results = self.system.reconciler.reconcile_all()
            self.system.audit_trail.log_event(
                event_type=AuditEventType.BALANCES_RECALCULATED,
                entity_type="system",
                entity_id="loans",
                metadata={
                    "loans": len(results),
                    "status_changes": sum(1 for r in results if r.status_changed)
                }
            )
            return {
                "message": "All loan balances have been recalculated",
                "loans": len(results)
            }
        return self._execute("recalculate_all_balances", "loans", operation)

    def cancel_loan(self, loan_id: str) -> Dict[str, Any]:
        def operation():
            self.system.loan_manager.cancel_loan(loan_id)
            return {"message": "Loan has been cancelled successfully", "loan_id": loan_id}
        return self._execute("cancel_loan", f"loan:{loan_id}", operation)

    def soft_delete_loan(self, loan_id: str) -> Dict[str, Any]:
        def operation():
            self.system.loan_manager.soft_delete_loan(loan_id)
            return {"message": "Loan has been deleted", "loan_id": loan_id}
        return self._execute("soft_delete_loan", f"loan:{loan_id}", operation)

    def set_status(self, loan_id: str, status: Union[LoanStatus, str]) -> Dict[str, Any]:
        def operation():
            request = SetStatusRequest(loan_id=loan_id, status=status)
            self.system.loan_manager.set_status(request.loan_id, request.status)
            return {"message": "Loan status updated successfully", "loan_id": loan_id,
                    "status": request.status.value}
        return self._execute("set_status", f"loan:{loan_id}", operation)

    # Read paths

    def list_loans(self) -> List[Dict[str, Any]]:
        """Every loan not soft-deleted, with the borrower's name"""
        def operation():
            customers = self.system.customer_directory.get_customers_by_id()
            return [
                _loan_view(loan, customers.get(loan.customer_id))
                for loan in self.system.loan_manager.list_loans()
            ]
        return self._execute("list_loans", "loans", operation)

    def list_customer_loans(self, customer_id: str,
                            status: Optional[Union[LoanStatus, str]] = None) -> List[Dict[str, Any]]:
        def operation():
            try:
                status_filter = LoanStatus(status) if status is not None else None
            except ValueError:
                raise RequestValidationError(f"Unknown loan status: {status}")
            loans = self.system.loan_manager.list_customer_loans(customer_id, status_filter)
            return [_loan_view(loan) for loan in loans]
        return self._execute("list_customer_loans", f"customer:{customer_id}", operation)

    def get_loan(self, loan_id: str) -> Dict[str, Any]:
        def operation():
            loan = self.system.loan_manager.require_loan(loan_id)
            return _loan_view(loan, self.system.customer_directory.get_customer(loan.customer_id))
        return self._execute("get_loan", f"loan:{loan_id}", operation)

    def get_installments(self, loan_id: str) -> List[Dict[str, Any]]:
        """Installments of a loan in schedule order"""
        def operation():
            self.system.loan_manager.require_loan(loan_id)
            return [i.to_dict() for i in self.system.loan_manager.get_installments(loan_id)]
        return self._execute("get_installments", f"loan:{loan_id}", operation)

    def get_payment_history(self, loan_id: str) -> List[Dict[str, Any]]:
        """Ledger entries of a loan in the order they were recorded"""
        def operation():
            self.system.loan_manager.require_loan(loan_id)
            return [entry.to_dict() for entry in self.system.ledger.get_entries(loan_id)]
        return self._execute("get_payment_history", f"loan:{loan_id}", operation)

    def verify_audit_trail(self) -> Dict[str, Any]:
        def operation():
            result = self.system.audit_trail.verify_integrity()
            self.system.audit_trail.log_event(
                event_type=AuditEventType.AUDIT_INTEGRITY_CHECK,
                entity_type="system",
                entity_id="audit_events",
                metadata={"valid": result["valid"], "total_events": result["total_events"]}
            )
            return result
        return self._execute("verify_audit_trail", "audit_events", operation)
