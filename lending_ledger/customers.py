"""
Customer Directory Module

Read-only view of borrowers for the ledger: validates the customer a loan
is originated for and supplies display names for loan listings. Customer
maintenance lives outside this package.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Optional
import uuid

from .storage import StorageInterface, StorageRecord


@dataclass
class Customer(StorageRecord):
    """Borrower referenced by loans"""
    first_name: str
    last_name: str
    middle_name: str = ""
    contact: str = ""
    address: str = ""

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(part for part in parts if part)


class CustomerDirectory:
    """Lookup of customers stored alongside the ledger"""

    def __init__(self, storage: StorageInterface, table_name: str = "customers"):
        self.storage = storage
        self.table_name = table_name

    def register_customer(
        self,
        first_name: str,
        last_name: str,
        middle_name: str = "",
        contact: str = "",
        address: str = "",
        customer_id: Optional[str] = None
    ) -> Customer:
        """Store a customer record so loans can reference it"""
        now = datetime.now(timezone.utc)
        customer = Customer(
            id=customer_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            first_name=first_name,
            last_name=last_name,
            middle_name=middle_name,
            contact=contact,
            address=address
        )
        self.storage.save(self.table_name, customer.id, customer.to_dict())
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        data = self.storage.load(self.table_name, customer_id)
        if data:
            return Customer.from_dict(data)
        return None

    def exists(self, customer_id: str) -> bool:
        return self.storage.exists(self.table_name, customer_id)

    def get_customers_by_id(self) -> Dict[str, Customer]:
        """Map of customer id to customer, for decorating listings"""
        return {
            data['id']: Customer.from_dict(data)
            for data in self.storage.load_all(self.table_name)
        }
