import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db, session_scope
from default_categories import ensure_defaults_seeded
from errors import LedgerError
from models import TransactionType
from periods import TimePeriod
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdate,
    BalanceIn,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    ImportResultOut,
    RecurringTransactionIn,
    RecurringTransactionOut,
    RecurringTransactionUpdate,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    TransferIn,
    TransferOut,
)
from services import (
    AccountService,
    CSVImportService,
    CategoryService,
    RecurringTransactionService,
    TransactionService,
    TransferService,
)


logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seeded = ensure_defaults_seeded(session)
    if seeded:
        logger.info(f"startup: default_categories={seeded}")
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _http_error(exc: LedgerError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


async def _read_upload(file: UploadFile) -> bytes:
    limit = get_settings().csv_max_bytes
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise HTTPException(status_code=413, detail="CSV file is too large")
    return content


# Accounts


@app.get("/accounts", response_model=list[AccountOut])
def list_accounts(db: Session = Depends(get_db)):
    return AccountService(db).list_by_user()


@app.post("/accounts", response_model=AccountOut, status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    return AccountService(db).create(data)


@app.get("/accounts/{account_id}", response_model=AccountOut)
def get_account(account_id: int, db: Session = Depends(get_db)):
    try:
        return AccountService(db).get(account_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.patch("/accounts/{account_id}", response_model=AccountOut)
def update_account(account_id: int, data: AccountUpdate, db: Session = Depends(get_db)):
    try:
        return AccountService(db).update(account_id, data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.delete("/accounts/{account_id}", status_code=204)
def delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).remove(account_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.put("/accounts/{account_id}/balance", response_model=AccountOut)
def set_account_balance(account_id: int, data: BalanceIn, db: Session = Depends(get_db)):
    try:
        return AccountService(db).update_balance(account_id, data.balance)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.post("/accounts/{account_id}/recalculate", response_model=AccountOut)
def recalculate_account_balance(account_id: int, db: Session = Depends(get_db)):
    try:
        return AccountService(db).recalculate_balance(account_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/accounts/{account_id}/transactions", response_model=list[TransactionOut])
def list_account_transactions(
    account_id: int,
    period: Optional[TimePeriod] = None,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db).find_by_account(account_id, period, offset)
    except LedgerError as exc:
        raise _http_error(exc) from exc


# Categories


@app.get("/categories", response_model=list[CategoryOut])
def list_categories(type: Optional[TransactionType] = None, db: Session = Depends(get_db)):
    return CategoryService(db).list_visible_to(type)


@app.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).create(data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).get(category_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, data: CategoryUpdate, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).update(category_id, data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).remove(category_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Transactions


@app.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    period: Optional[TimePeriod] = None,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return TransactionService(db).find_all(period, offset)


@app.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).create(data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/transactions/export.csv")
def export_transactions_endpoint(
    period: Optional[TimePeriod] = None,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    csv_text = CSVImportService(db).export(period, offset)
    filename = f"transactions_{(period or TimePeriod.month).value}_{offset}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/transactions/import/preview")
async def import_preview(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await _read_upload(file)
    try:
        rows, errors = CSVImportService(db).preview(content)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return {"rows": [row.model_dump(mode="json") for row in rows], "errors": errors}


@app.post("/transactions/import", response_model=ImportResultOut)
async def import_transactions(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await _read_upload(file)
    try:
        result = CSVImportService(db).import_csv(content)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return ImportResultOut(imported=result.imported, errors=result.errors)


@app.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).find_one(transaction_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.patch("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, data: TransactionUpdate, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).update(transaction_id, data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).remove(transaction_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Transfers


@app.post("/transfers", response_model=TransferOut, status_code=201)
def create_transfer(data: TransferIn, db: Session = Depends(get_db)):
    try:
        result = TransferService(db).transfer(data)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return TransferOut(
        source_transaction=TransactionOut.model_validate(result.source_transaction),
        destination_transaction=TransactionOut.model_validate(
            result.destination_transaction
        ),
    )


# Recurring transactions


@app.get("/recurring-transactions", response_model=list[RecurringTransactionOut])
def list_recurring(db: Session = Depends(get_db)):
    return RecurringTransactionService(db).list()


@app.post(
    "/recurring-transactions", response_model=RecurringTransactionOut, status_code=201
)
def create_recurring(data: RecurringTransactionIn, db: Session = Depends(get_db)):
    try:
        return RecurringTransactionService(db).create(data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/recurring-transactions/{definition_id}", response_model=RecurringTransactionOut)
def get_recurring(definition_id: int, db: Session = Depends(get_db)):
    try:
        return RecurringTransactionService(db).find_one(definition_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.patch(
    "/recurring-transactions/{definition_id}", response_model=RecurringTransactionOut
)
def update_recurring(
    definition_id: int,
    data: RecurringTransactionUpdate,
    db: Session = Depends(get_db),
):
    try:
        return RecurringTransactionService(db).update(definition_id, data)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.post(
    "/recurring-transactions/{definition_id}/toggle",
    response_model=RecurringTransactionOut,
)
def toggle_recurring(definition_id: int, db: Session = Depends(get_db)):
    service = RecurringTransactionService(db)
    try:
        definition = service.find_one(definition_id)
        return service.set_active(definition_id, not definition.is_active)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.delete("/recurring-transactions/{definition_id}", status_code=204)
def delete_recurring(definition_id: int, db: Session = Depends(get_db)):
    try:
        RecurringTransactionService(db).remove(definition_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)
