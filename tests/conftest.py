"""
Pytest configuration and fixtures.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime
from decimal import Decimal
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from receivables.application.services import TransactionEventHandler
from receivables.infrastructure.database import get_db
from receivables.infrastructure.database.models import (
    Customer,
    CustomerCreditDebitNote,
    CustomerPayment,
    CustomerReturn,
    Sale,
)
from receivables.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class LedgerFixture:
    """Creates customers and counted source documents, posting them like the API does."""

    def __init__(self, db):
        self.db = db
        self.handler = TransactionEventHandler(db)
        self._codes = count(1001)

    def customer(self, code: str = "C001", name: str = "Acme Trading", credit_limit: str = "0") -> Customer:
        customer = Customer(code=code, name=name, credit_limit=Decimal(credit_limit))
        self.db.add(customer)
        self.db.commit()
        return customer

    def _save(self, record):
        self.db.add(record)
        self.db.flush()
        return record

    def sale(self, customer, when: datetime, amount, approve: bool = True, post: bool = True, note=None) -> Sale:
        now = datetime.utcnow()
        sale = self._save(Sale(
            code=str(next(self._codes)),
            date=when,
            customer_id=customer.id,
            total=Decimal(amount),
            total_usd=Decimal(amount),
            note=note,
            approved_by="tester" if approve else None,
            approved_at=now if approve else None,
        ))
        if approve and post:
            self.handler.sale_approved(sale)
        self.db.commit()
        return sale

    def payment(self, customer, when: datetime, amount, note=None) -> CustomerPayment:
        payment = self._save(CustomerPayment(
            code=str(next(self._codes)),
            date=when,
            customer_id=customer.id,
            amount=Decimal(amount),
            amount_usd=Decimal(amount),
            note=note,
            approved_by="tester",
            approved_at=datetime.utcnow(),
        ))
        self.handler.payment_approved(payment)
        self.db.commit()
        return payment

    def customer_return(self, customer, when: datetime, amount, receive: bool = True, note=None) -> CustomerReturn:
        now = datetime.utcnow()
        customer_return = self._save(CustomerReturn(
            code=str(next(self._codes)),
            date=when,
            customer_id=customer.id,
            total=Decimal(amount),
            total_usd=Decimal(amount),
            note=note,
            approved_by="tester",
            approved_at=now,
            return_received_by="warehouse" if receive else None,
            return_received_at=now if receive else None,
        ))
        if receive:
            self.handler.return_received(customer_return)
        self.db.commit()
        return customer_return

    def note(self, customer, when: datetime, amount, note_type: str = "credit", note=None) -> CustomerCreditDebitNote:
        record = self._save(CustomerCreditDebitNote(
            code=str(next(self._codes)),
            prefix="CRN" if note_type == "credit" else "DBN",
            type=note_type,
            date=when,
            customer_id=customer.id,
            amount=Decimal(amount),
            amount_usd=Decimal(amount),
            note=note,
        ))
        self.handler.note_created(record)
        self.db.commit()
        return record


@pytest.fixture
def ledger(db) -> LedgerFixture:
    return LedgerFixture(db)


@pytest.fixture
def customer(ledger) -> Customer:
    return ledger.customer()
