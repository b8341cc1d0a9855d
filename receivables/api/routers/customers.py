"""
API Routers - Customers, statements and balance ledger endpoints.
"""

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from receivables.application.dto.ledger_dto import (
    BatchStatsDTO,
    CurrentBalanceDTO,
    CustomerCreateDTO,
    CustomerResponseDTO,
    MonthlyBalanceDTO,
    RebuildResponseDTO,
    RecalculateRequestDTO,
    RecalculateResponseDTO,
    StatementResponseDTO,
    YearlyBalanceDTO,
)
from receivables.application.services import (
    BalanceAggregationService,
    CustomerBalanceQueryService,
    StatementService,
)
from receivables.application.services.closing import calculate_yearly_closing_for_all_customers
from receivables.core.config import settings
from receivables.domain.entities import StatementFilters
from receivables.infrastructure.database import commit_with_retry, get_db
from receivables.infrastructure.database.models import Customer

router = APIRouter(prefix="/api/v1", tags=["Customers"])


@router.post("/customers", response_model=CustomerResponseDTO, status_code=status.HTTP_201_CREATED)
def create_customer(dto: CustomerCreateDTO, db: Session = Depends(get_db)):
    if db.query(Customer).filter(Customer.code == dto.code).first():
        raise HTTPException(status_code=400, detail=f"Customer code {dto.code} already exists")

    customer = Customer(code=dto.code, name=dto.name, credit_limit=dto.credit_limit)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/customers/{customer_id}", response_model=CustomerResponseDTO)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    customer = db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    return customer


@router.post("/customers/balances/recalculate", response_model=RecalculateResponseDTO)
def recalculate_all_balances(
    dto: RecalculateRequestDTO | None = None,
    db: Session = Depends(get_db),
):
    """Overwrite every drifted cached balance with the source-derived one."""
    customer_ids = dto.customer_ids if dto else None
    return commit_with_retry(db, lambda s: StatementService(s).recalculate_balances(customer_ids))


@router.post("/customers/balances/yearly-closing", response_model=BatchStatsDTO)
def yearly_closing(
    year: int | None = Query(None, description="Defaults to the previous year"),
    db: Session = Depends(get_db),
):
    return calculate_yearly_closing_for_all_customers(db, year or datetime.utcnow().year - 1)


@router.get("/customers/{customer_id}/statement", response_model=StatementResponseDTO)
def get_statement(
    customer_id: int,
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    search: str | None = Query(None, description="Matches note, code or prefix"),
    transaction_type: str | None = Query(None, description="sale, payment, return, credit_debit_note"),
    sort_direction: str = Query("desc", pattern="^(asc|desc)$"),
    with_page: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """
    Statement rebuilt from the source tables with a running balance.

    Without filters the final balance also reconciles the customer's cached balance.
    """
    filters = StatementFilters.create(from_date, to_date, search, transaction_type)
    statement = commit_with_retry(
        db, lambda s: StatementService(s).build_statement(customer_id, filters, sort_direction)
    )
    customer = db.get(Customer, customer_id)

    result_page = None
    if with_page:
        result_page = statement.paginate(page, per_page or settings.statement_per_page)
    return StatementResponseDTO.build(customer, statement, result_page)


@router.get("/statements", response_model=StatementResponseDTO)
def search_statements(
    customer: str | None = Query(None, description="Customer code or name"),
    note: str | None = Query(None, description="Matches note, code or prefix"),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    transaction_type: str | None = Query(None),
    sort_direction: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
):
    filters = StatementFilters.create(from_date, to_date, note, transaction_type)
    found, statement = StatementService(db).search_statement(customer, filters, sort_direction)
    return StatementResponseDTO.build(found, statement)


@router.get("/customers/{customer_id}/balance", response_model=CurrentBalanceDTO)
def get_current_balance(customer_id: int, db: Session = Depends(get_db)):
    service = CustomerBalanceQueryService(db)
    check = service.check_credit_limit(customer_id)
    return CurrentBalanceDTO(
        customer_id=customer_id,
        current_balance=check.current_balance,
        status=service.balance_status(check.current_balance).value,
        credit_limit=check.credit_limit,
        owed=check.owed,
    )


@router.get("/customers/{customer_id}/balances/monthly", response_model=list[MonthlyBalanceDTO])
def list_monthly_balances(
    customer_id: int,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
):
    return CustomerBalanceQueryService(db).list_monthly_balances(customer_id, year)


@router.get("/customers/{customer_id}/balances/monthly/{year}/{month}", response_model=MonthlyBalanceDTO)
def get_monthly_balance(customer_id: int, year: int, month: int, db: Session = Depends(get_db)):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="month must be between 1 and 12")
    row = CustomerBalanceQueryService(db).get_monthly_balance(customer_id, year, month)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No balance for {year}-{month:02d}")
    return row


@router.get("/customers/{customer_id}/balances/yearly/{year}", response_model=YearlyBalanceDTO)
def get_yearly_balance(customer_id: int, year: int, db: Session = Depends(get_db)):
    row = CustomerBalanceQueryService(db).get_yearly_balance(customer_id, year)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No balance for {year}")
    return row


@router.post("/customers/{customer_id}/balances/rebuild", response_model=RebuildResponseDTO)
def rebuild_balances(customer_id: int, db: Session = Depends(get_db)):
    """Recompute the customer's monthly and yearly rows from the source tables."""
    result = commit_with_retry(db, lambda s: BalanceAggregationService(s).full_rebuild(customer_id))
    return RebuildResponseDTO.from_result(result)
