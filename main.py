import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

import aggregation
from config import get_settings
from database import get_db
from defaults import (
    CategoryDefaults,
    DescriptionAllowList,
    get_category_defaults,
    get_description_allow_list,
)
from models import Transaction, User, UserCategory
from schemas import LoginIn, RegisterIn, TransactionIn, UserCategoriesIn
from services import (
    AuthError,
    AuthService,
    CategoryGroups,
    CategoryService,
    ConflictError,
    CSVService,
    NotFoundError,
    StoreError,
    TransactionService,
    ValidationError,
)
from sessions import generate_session_token, read_session_token

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{location}: {message}" if location else message
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def user_payload(user: User, *, include_created: bool = False) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
    }
    if include_created:
        payload["created_at"] = user.created_at.isoformat()
    return payload


def category_payload(category: UserCategory) -> dict[str, object]:
    return {"id": category.id, "name": category.name, "color": category.color}


def groups_payload(groups: CategoryGroups) -> dict[str, object]:
    return {
        "incomeCategories": [category_payload(c) for c in groups.income],
        "expenseCategories": [category_payload(c) for c in groups.expense],
    }


def task_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "category": txn.category,
        "description": txn.description,
        "amount": txn.amount,
        "type": txn.type.value,
        "date": txn.date.isoformat(),
        "user": txn.user,
        "created_at": txn.created_at.isoformat(),
    }


def filtered_transactions(request: Request, db: Session) -> list[Transaction]:
    params = request.query_params
    items = TransactionService(db).list_all()
    try:
        items = aggregation.filter_transactions(
            items,
            search=params.get("q"),
            category=params.get("category"),
            kind=params.get("type"),
        )
        if params.get("sort") or params.get("order"):
            items = aggregation.sort_transactions(
                items,
                key=params.get("sort") or "date",
                order=params.get("order") or "desc",
            )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return items


def bearer_user_id(request: Request) -> Optional[int]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return read_session_token(token.strip())


@app.on_event("startup")
def startup_event():
    logger.info(f"startup: cors_origins={settings.cors_origins}")


@app.get("/api/test")
def api_test():
    return {"message": "Backend API is running!"}


@app.post("/api/register", status_code=201)
def register(
    payload: RegisterIn,
    db: Session = Depends(get_db),
    category_defaults: CategoryDefaults = Depends(get_category_defaults),
):
    try:
        user = AuthService(db, category_defaults).register(payload)
    except (ValidationError, ConflictError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "message": "User created successfully",
        "user": user_payload(user),
        "token": generate_session_token(user.id),
    }


@app.post("/api/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    try:
        user = AuthService(db).login(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return {
        "message": "Login successful",
        "user": user_payload(user),
        "token": generate_session_token(user.id),
    }


@app.get("/api/me")
def current_user(request: Request, db: Session = Depends(get_db)):
    user_id = bearer_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user = AuthService(db).get_user(user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=401, detail="Not authenticated") from exc
    return {"user": user_payload(user, include_created=True)}


@app.get("/api/profile/{user_id}")
def profile(user_id: int, db: Session = Depends(get_db)):
    try:
        user = AuthService(db).get_user(user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"user": user_payload(user, include_created=True)}


@app.get("/api/categories")
def default_descriptions(
    allow_list: DescriptionAllowList = Depends(get_description_allow_list),
):
    return {
        "expenseDescriptions": list(allow_list.expense),
        "incomeDescriptions": list(allow_list.income),
    }


@app.get("/api/user-categories/{user_id}")
def user_categories(
    user_id: int,
    db: Session = Depends(get_db),
    category_defaults: CategoryDefaults = Depends(get_category_defaults),
):
    try:
        groups = CategoryService(db, user_id, category_defaults).get_categories()
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return groups_payload(groups)


@app.post("/api/user-categories")
def save_user_categories(
    payload: UserCategoriesIn,
    db: Session = Depends(get_db),
    category_defaults: CategoryDefaults = Depends(get_category_defaults),
):
    if payload.user_id is None or payload.categories is None:
        raise HTTPException(status_code=400, detail="userId and categories are required")
    service = CategoryService(db, payload.user_id, category_defaults)
    try:
        groups = service.replace_all(payload.categories)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    result: dict[str, object] = {"message": "Categories saved successfully"}
    result.update(groups_payload(groups))
    return result


@app.post("/api/user-categories/{user_id}/default")
def seed_user_categories(
    user_id: int,
    db: Session = Depends(get_db),
    category_defaults: CategoryDefaults = Depends(get_category_defaults),
):
    try:
        groups = CategoryService(db, user_id, category_defaults).seed_defaults()
    except ConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return groups_payload(groups)


@app.post("/api/tasks", status_code=201)
def create_task(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    category_defaults: CategoryDefaults = Depends(get_category_defaults),
):
    service = TransactionService(db, category_defaults=category_defaults)
    try:
        txn = service.create(payload)
    except (ValidationError, NotFoundError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return task_payload(txn)


@app.get("/api/tasks")
def list_tasks(request: Request, db: Session = Depends(get_db)):
    return [task_payload(txn) for txn in filtered_transactions(request, db)]


@app.get("/api/tasks/summary")
def tasks_summary(request: Request, db: Session = Depends(get_db)):
    items = filtered_transactions(request, db)
    totals = aggregation.totals(items)
    return {
        "totals": {
            "income": totals.income_cents / 100,
            "expenses": totals.expense_cents / 100,
            "balance": totals.balance_cents / 100,
            "incomeCount": len(aggregation.filter_transactions(items, kind="income")),
            "expenseCount": len(aggregation.filter_transactions(items, kind="expense")),
        },
        "byCategory": [
            {"category": label, "total": cents / 100}
            for label, cents in aggregation.by_category(items).items()
        ],
        "byMonth": [
            {"month": row.month, "total": row.total_cents / 100}
            for row in aggregation.by_month(items)
        ],
    }


@app.get("/api/tasks/export")
def export_tasks(
    db: Session = Depends(get_db),
    allow_list: DescriptionAllowList = Depends(get_description_allow_list),
):
    csv_text = CSVService(db, allow_list).export_csv()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"transactions_export_{timestamp}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/tasks/import")
async def import_tasks(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    allow_list: DescriptionAllowList = Depends(get_description_allow_list),
):
    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8") from exc
    count = CSVService(db, allow_list).import_csv(content)
    return {"message": f"Imported {count} transactions", "count": count}


@app.get("/api/tasks/{task_id}")
def get_task(task_id: int, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).get(task_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return task_payload(txn)


@app.put("/api/tasks/{task_id}")
def update_task(
    task_id: int,
    payload: TransactionIn,
    db: Session = Depends(get_db),
    allow_list: DescriptionAllowList = Depends(get_description_allow_list),
):
    try:
        txn = TransactionService(db, allow_list).update(task_id, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return task_payload(txn)


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(task_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Transaction deleted"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=5000, reload=False)


if __name__ == "__main__":
    main()
