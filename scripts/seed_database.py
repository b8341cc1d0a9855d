#!/usr/bin/env python3
"""
Database Seeding Script - Receivables ledger
Seeds demo customers and transactions for testing and UAT.

Customers come from seed_data/customers.csv when it exists. Every posting goes
through the event handler, so the monthly/yearly rows are built the same way
the API builds them.
"""

import csv
import os
from datetime import datetime
from decimal import Decimal
from pathlib import Path

DEMO_CUSTOMERS = [
    {"code": "C001", "name": "Acme Trading", "credit_limit": "0"},
    {"code": "C002", "name": "Blue Harbor Imports", "credit_limit": "5000"},
]

# (customer code, kind, document code, date, USD amount, note)
DEMO_TRANSACTIONS = [
    ("C001", "sale", "1001", datetime(2025, 1, 10), "100", "Opening order"),
    ("C001", "payment", "2001", datetime(2025, 1, 20), "60", "Partial payment"),
    ("C001", "return", "3001", datetime(2025, 2, 5), "20", "Damaged goods"),
    ("C001", "credit", "4001", datetime(2025, 1, 15), "5", "Price adjustment"),
    ("C002", "sale", "1002", datetime(2025, 3, 2), "1200", None),
    ("C002", "debit", "4002", datetime(2025, 3, 18), "35", "Late fee"),
    ("C002", "payment", "2002", datetime(2025, 4, 1), "1000", None),
]


def read_csv(filepath: str) -> list[dict]:
    """Read a CSV file into dict rows."""
    if not os.path.exists(filepath):
        return []
    with open(filepath, "r", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def main():
    """Main function."""
    print("=" * 60)
    print("Database Seeding - Receivables ledger")
    print("=" * 60)

    from receivables.infrastructure.database import SessionLocal, init_db

    init_db()

    from receivables.application.services import TransactionEventHandler
    from receivables.infrastructure.database.models import (
        Customer,
        CustomerCreditDebitNote,
        CustomerPayment,
        CustomerReturn,
        Sale,
    )

    db = SessionLocal()

    try:
        customers_file = Path(__file__).parent / "seed_data" / "customers.csv"
        customers_data = read_csv(str(customers_file)) or DEMO_CUSTOMERS
        print(f"\nSeeding {len(customers_data)} customers...")

        customers = {}
        for row in customers_data:
            customer = db.query(Customer).filter(Customer.code == row["code"]).first()
            if not customer:
                customer = Customer(
                    code=row["code"],
                    name=row["name"],
                    credit_limit=Decimal(row.get("credit_limit") or "0"),
                )
                db.add(customer)
                db.flush()
            customers[customer.code] = customer
        db.commit()
        print(f"✓ Seeded {len(customers)} customers")

        print(f"\nSeeding {len(DEMO_TRANSACTIONS)} transactions...")
        handler = TransactionEventHandler(db)
        posted = 0
        for code, kind, doc_code, when, amount, note in DEMO_TRANSACTIONS:
            customer = customers.get(code)
            if customer is None:
                continue
            usd = Decimal(amount)
            now = datetime.utcnow()

            if kind == "sale":
                if db.query(Sale).filter(Sale.code == doc_code).first():
                    continue
                record = Sale(code=doc_code, date=when, customer_id=customer.id, total=usd,
                              total_usd=usd, note=note, approved_by="seed", approved_at=now)
                db.add(record)
                db.flush()
                handler.sale_approved(record)
            elif kind == "payment":
                if db.query(CustomerPayment).filter(CustomerPayment.code == doc_code).first():
                    continue
                record = CustomerPayment(code=doc_code, date=when, customer_id=customer.id, amount=usd,
                                         amount_usd=usd, note=note, approved_by="seed", approved_at=now)
                db.add(record)
                db.flush()
                handler.payment_approved(record)
            elif kind == "return":
                if db.query(CustomerReturn).filter(CustomerReturn.code == doc_code).first():
                    continue
                record = CustomerReturn(code=doc_code, date=when, customer_id=customer.id, total=usd,
                                        total_usd=usd, note=note, approved_by="seed", approved_at=now,
                                        return_received_by="seed", return_received_at=now)
                db.add(record)
                db.flush()
                handler.return_received(record)
            else:
                if db.query(CustomerCreditDebitNote).filter(CustomerCreditDebitNote.code == doc_code).first():
                    continue
                record = CustomerCreditDebitNote(code=doc_code, prefix="CRN" if kind == "credit" else "DBN",
                                                 type=kind, date=when, customer_id=customer.id, amount=usd,
                                                 amount_usd=usd, note=note)
                db.add(record)
                db.flush()
                handler.note_created(record)
            posted += 1
        db.commit()
        print(f"✓ Posted {posted} transactions")

        print("\n=== Balances ===")
        for customer in customers.values():
            db.refresh(customer)
            print(f"  {customer.code} {customer.name}: {customer.current_balance}")

        print("\n" + "=" * 60)
        print("Seeding completed successfully!")
        print("=" * 60)

    except Exception as e:
        print(f"\n❌ Error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
