"""
Test suite for the customer directory

The directory is a read-only view for the ledger: it validates loan
origination and decorates loan listings with borrower names.
"""

from lending_ledger.storage import InMemoryStorage
from lending_ledger.customers import Customer, CustomerDirectory


class TestCustomerDirectory:
    """Test customer lookup"""

    def setup_method(self):
        self.directory = CustomerDirectory(InMemoryStorage())

    def test_register_and_get(self):
        """Test registering and reading back a customer"""
        customer = self.directory.register_customer(
            first_name="Maria", middle_name="Santos", last_name="Cruz",
            contact="09171234567", address="Quezon City"
        )

        stored = self.directory.get_customer(customer.id)
        assert isinstance(stored, Customer)
        assert stored.full_name == "Maria Santos Cruz"
        assert stored.contact == "09171234567"
        assert self.directory.exists(customer.id)

    def test_full_name_without_middle_name(self):
        """Test full name skips a missing middle name"""
        customer = self.directory.register_customer("Jose", "Rizal", customer_id="c1")
        assert customer.full_name == "Jose Rizal"
        assert customer.id == "c1"

    def test_unknown_customer(self):
        """Test an unknown customer is rejected"""
        assert self.directory.get_customer("missing") is None
        assert not self.directory.exists("missing")

    def test_customers_by_id(self):
        """Test the id to customer map"""
        first = self.directory.register_customer("Maria", "Cruz")
        second = self.directory.register_customer("Jose", "Rizal")

        by_id = self.directory.get_customers_by_id()
        assert set(by_id) == {first.id, second.id}
        assert by_id[second.id].last_name == "Rizal"
