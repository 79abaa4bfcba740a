"""
Payment Ledger

Append-only payment history. Every allocation step of a payment and every
injected penalty becomes one immutable LedgerEntry; the ordered entries of
a loan are its complete audit trail. There is no update or delete path.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List
import uuid

from .storage import StorageInterface, StorageRecord


PENALTY_METHOD = "Penalty"


@dataclass
class LedgerEntry(StorageRecord):
    """One allocation step: an amount applied to (or added onto) an installment"""
    loan_id: str
    installment_id: str
    entry_number: int          # 1-based, per loan
    amount: Decimal
    payment_method: str        # Tender for payments, "Penalty" for penalties
    notes: str
    transaction_time: datetime

    @property
    def is_penalty(self) -> bool:
        return self.payment_method == PENALTY_METHOD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEntry':
        data['amount'] = Decimal(data['amount'])
        data['transaction_time'] = datetime.fromisoformat(data['transaction_time'])
        return super().from_dict(data)


class PaymentLedger:
    """
    Append-only store of ledger entries
    """

    def __init__(self, storage: StorageInterface, table_name: str = "ledger_entries"):
        self.storage = storage
        self.table_name = table_name
        # Last entry number per loan, so appends never scan the ledger
        self.counters_table = f"{table_name}_counters"

    def append(
        self,
        loan_id: str,
        installment_id: str,
        amount: Decimal,
        payment_method: str,
        notes: str,
        transaction_time: datetime
    ) -> LedgerEntry:
        """
        Append an entry for a loan

        Joins the caller's ``storage.atomic()`` block when there is one, so
        the entry number is taken under the same lock and rolls back with it.
        """
        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            entry = LedgerEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan_id,
                installment_id=installment_id,
                entry_number=self._next_entry_number(loan_id),
                amount=amount,
                payment_method=payment_method,
                notes=notes,
                transaction_time=transaction_time
            )
            self.storage.save(self.table_name, entry.id, entry.to_dict())
        return entry

    def _next_entry_number(self, loan_id: str) -> int:
        counter = self.storage.load(self.counters_table, loan_id)
        number = (counter['last_entry_number'] if counter else 0) + 1
        self.storage.save(self.counters_table, loan_id,
                          {'id': loan_id, 'last_entry_number': number})
        return number

    def get_entries(self, loan_id: str) -> List[LedgerEntry]:
        """All entries of a loan in the order they were appended"""
        entries = [
            LedgerEntry.from_dict(data)
            for data in self.storage.find(self.table_name, {"loan_id": loan_id})
        ]
        entries.sort(key=lambda e: e.entry_number)
        return entries

    def get_installment_entries(self, installment_id: str) -> List[LedgerEntry]:
        entries = [
            LedgerEntry.from_dict(data)
            for data in self.storage.find(self.table_name, {"installment_id": installment_id})
        ]
        entries.sort(key=lambda e: e.entry_number)
        return entries

    def total_for_loan(self, loan_id: str, penalties: bool = False) -> Decimal:
        """Sum of payment entries (or of penalty entries) for a loan"""
        return sum(
            (e.amount for e in self.get_entries(loan_id) if e.is_penalty == penalties),
            Decimal('0')
        )
