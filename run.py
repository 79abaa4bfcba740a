#!/usr/bin/env python3
"""
Lending Ledger Maintenance Entry Point

Reconciles every stored loan against its installments, repairing
previously stored balances and statuses. The store is taken from
LENDING_DATABASE_URL (default sqlite:///lending.db).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from lending_ledger.config import get_config
from lending_ledger.errors import LendingError
from lending_ledger.logging_config import setup_logging_from_config
from lending_ledger.service import LendingService, LendingSystem


def main() -> int:
    config = get_config()
    setup_logging_from_config(config)

    print(f"Recalculating loan balances in {config.database_url}")
    try:
        with LendingSystem(config=config) as system:
            result = LendingService(system).recalculate_all_balances()
    except LendingError as e:
        print(f"Error: {e.message}")
        return 1

    print(f"{result['message']} ({result['loans']} loans)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
