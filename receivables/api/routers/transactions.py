"""
API Routers - Source documents whose lifecycle feeds the balance ledger.

Each approval, receipt or note is committed together with its ledger posting.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from receivables.application.dto.ledger_dto import (
    ApprovalDTO,
    LedgerPostingDTO,
    NoteCreateDTO,
    PaymentCreateDTO,
    ReturnCreateDTO,
    SaleCreateDTO,
    SourceCreateDTO,
    SourceResponseDTO,
    SourceWriteResponseDTO,
)
from receivables.application.services import CustomerBalanceQueryService, TransactionEventHandler
from receivables.domain.exceptions import (
    CreditLimitExceededError,
    SourceRecordNotFoundError,
    SourceStateError,
)
from receivables.domain.value_objects import ExchangeRate
from receivables.infrastructure.database import commit_with_retry, get_db
from receivables.infrastructure.database.models import (
    CustomerCreditDebitNote,
    CustomerPayment,
    CustomerReturn,
    Sale,
)
from receivables.infrastructure.repositories import SqlBalanceLedgerRepository

router = APIRouter(prefix="/api/v1", tags=["Transactions"])


def _usd(dto: SourceCreateDTO):
    rate = ExchangeRate(dto.currency_rate, dto.currency, dto.calculation_type)
    return rate.to_usd(dto.amount).amount


def _response(record, posting=None) -> SourceWriteResponseDTO:
    amount_usd = record.amount_usd if hasattr(record, "amount_usd") else record.total_usd
    return SourceWriteResponseDTO(
        record=SourceResponseDTO(
            id=record.id,
            code=record.code,
            prefix=record.prefix,
            date=record.date,
            customer_id=record.customer_id,
            amount_usd=amount_usd,
            note=record.note,
            approved_at=getattr(record, "approved_at", None),
        ),
        posting=LedgerPostingDTO.from_result(posting) if posting is not None else None,
    )


def _load(db: Session, model, record_id: int):
    record = db.get(model, record_id)
    if record is None:
        raise SourceRecordNotFoundError(model.__tablename__, record_id)
    return record


def _create(db: Session, model, dto: SourceCreateDTO, **fields):
    SqlBalanceLedgerRepository(db).get_customer(dto.customer_id)
    if db.query(model).filter(model.code == dto.code).first():
        raise HTTPException(status_code=400, detail=f"{model.__tablename__} code {dto.code} already exists")
    record = model(
        code=dto.code,
        prefix=dto.prefix,
        date=dto.date,
        customer_id=dto.customer_id,
        currency_rate=dto.currency_rate,
        note=dto.note,
        **fields,
    )
    db.add(record)
    db.flush()
    return record


# Sales

@router.post("/sales", response_model=SourceWriteResponseDTO, status_code=status.HTTP_201_CREATED)
def create_sale(dto: SaleCreateDTO, db: Session = Depends(get_db)):
    """Draft sale; it reaches the ledger when approved."""
    sale = commit_with_retry(
        db, lambda s: _create(s, Sale, dto, total=dto.amount, total_usd=_usd(dto))
    )
    return _response(sale)


@router.post("/sales/{sale_id}/approve", response_model=SourceWriteResponseDTO)
def approve_sale(sale_id: int, dto: ApprovalDTO | None = None, db: Session = Depends(get_db)):
    """Approve a sale after checking the customer's credit limit."""
    user = dto.user if dto else "admin"

    def work(s: Session):
        sale = _load(s, Sale, sale_id)
        if sale.is_approved:
            raise SourceStateError(f"Sale {sale_id} is already approved")
        check = CustomerBalanceQueryService(s).check_credit_limit(sale.customer_id, sale.total_usd)
        if not check.within_limit:
            raise CreditLimitExceededError(sale.customer_id, check.credit_limit, check.projected_owed)
        sale.approved_by = user
        sale.approved_at = sale.updated_at = datetime.utcnow()
        s.flush()
        return sale, TransactionEventHandler(s).sale_approved(sale)

    sale, posting = commit_with_retry(db, work)
    return _response(sale, posting)


@router.post("/sales/{sale_id}/void", response_model=SourceWriteResponseDTO)
def void_sale(sale_id: int, db: Session = Depends(get_db)):
    def work(s: Session):
        sale = _load(s, Sale, sale_id)
        return sale, TransactionEventHandler(s).source_withdrawn(sale)

    sale, posting = commit_with_retry(db, work)
    return _response(sale, posting)


# Payments

@router.post("/payments", response_model=SourceWriteResponseDTO, status_code=status.HTTP_201_CREATED)
def create_payment(dto: PaymentCreateDTO, db: Session = Depends(get_db)):
    payment = commit_with_retry(
        db, lambda s: _create(s, CustomerPayment, dto, amount=dto.amount, amount_usd=_usd(dto))
    )
    return _response(payment)


@router.post("/payments/{payment_id}/approve", response_model=SourceWriteResponseDTO)
def approve_payment(payment_id: int, dto: ApprovalDTO | None = None, db: Session = Depends(get_db)):
    user = dto.user if dto else "admin"

    def work(s: Session):
        payment = _load(s, CustomerPayment, payment_id)
        if payment.is_approved:
            raise SourceStateError(f"Payment {payment_id} is already approved")
        payment.approved_by = user
        payment.approved_at = payment.updated_at = datetime.utcnow()
        s.flush()
        return payment, TransactionEventHandler(s).payment_approved(payment)

    payment, posting = commit_with_retry(db, work)
    return _response(payment, posting)


@router.post("/payments/{payment_id}/void", response_model=SourceWriteResponseDTO)
def void_payment(payment_id: int, db: Session = Depends(get_db)):
    def work(s: Session):
        payment = _load(s, CustomerPayment, payment_id)
        return payment, TransactionEventHandler(s).source_withdrawn(payment)

    payment, posting = commit_with_retry(db, work)
    return _response(payment, posting)


# Returns

@router.post("/returns", response_model=SourceWriteResponseDTO, status_code=status.HTTP_201_CREATED)
def create_return(dto: ReturnCreateDTO, db: Session = Depends(get_db)):
    customer_return = commit_with_retry(
        db, lambda s: _create(s, CustomerReturn, dto, total=dto.amount, total_usd=_usd(dto))
    )
    return _response(customer_return)


@router.post("/returns/{return_id}/approve", response_model=SourceWriteResponseDTO)
def approve_return(return_id: int, dto: ApprovalDTO | None = None, db: Session = Depends(get_db)):
    """Approval alone does not count; the warehouse receipt posts the return."""
    user = dto.user if dto else "admin"

    def work(s: Session):
        customer_return = _load(s, CustomerReturn, return_id)
        if customer_return.is_approved:
            raise SourceStateError(f"Return {return_id} is already approved")
        customer_return.approved_by = user
        customer_return.approved_at = customer_return.updated_at = datetime.utcnow()
        s.flush()
        return customer_return

    return _response(commit_with_retry(db, work))


@router.post("/returns/{return_id}/receive", response_model=SourceWriteResponseDTO)
def receive_return(return_id: int, dto: ApprovalDTO | None = None, db: Session = Depends(get_db)):
    user = dto.user if dto else "admin"

    def work(s: Session):
        customer_return = _load(s, CustomerReturn, return_id)
        if not customer_return.is_approved:
            raise SourceStateError(f"Return {return_id} must be approved before it is received")
        if customer_return.is_received:
            raise SourceStateError(f"Return {return_id} is already received")
        customer_return.return_received_by = user
        customer_return.return_received_at = customer_return.updated_at = datetime.utcnow()
        s.flush()
        return customer_return, TransactionEventHandler(s).return_received(customer_return)

    customer_return, posting = commit_with_retry(db, work)
    return _response(customer_return, posting)


@router.post("/returns/{return_id}/void", response_model=SourceWriteResponseDTO)
def void_return(return_id: int, db: Session = Depends(get_db)):
    def work(s: Session):
        customer_return = _load(s, CustomerReturn, return_id)
        return customer_return, TransactionEventHandler(s).source_withdrawn(customer_return)

    customer_return, posting = commit_with_retry(db, work)
    return _response(customer_return, posting)


# Credit / debit notes

@router.post("/credit-debit-notes", response_model=SourceWriteResponseDTO, status_code=status.HTTP_201_CREATED)
def create_note(dto: NoteCreateDTO, db: Session = Depends(get_db)):
    """A note counts from creation and is posted in the same transaction."""
    prefix = dto.prefix or ("CRN" if dto.type == "credit" else "DBN")

    def work(s: Session):
        note = _create(
            s,
            CustomerCreditDebitNote,
            dto.model_copy(update={"prefix": prefix}),
            type=dto.type,
            amount=dto.amount,
            amount_usd=_usd(dto),
        )
        return note, TransactionEventHandler(s).note_created(note)

    note, posting = commit_with_retry(db, work)
    return _response(note, posting)


@router.delete("/credit-debit-notes/{note_id}", response_model=LedgerPostingDTO)
def delete_note(note_id: int, db: Session = Depends(get_db)):
    def work(s: Session):
        note = _load(s, CustomerCreditDebitNote, note_id)
        return TransactionEventHandler(s).source_withdrawn(note)

    return LedgerPostingDTO.from_result(commit_with_retry(db, work))
