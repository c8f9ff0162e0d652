import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import InvalidToken, issue_token, read_token
from config import get_settings
from database import Database
from models import Category, Transaction, TransactionType, User
from periods import DateRange, resolve_date_range
from schemas import (
    CategoryIn,
    LoginIn,
    PasswordIn,
    ProfileIn,
    TransactionIn,
    UserIn,
)
from services import (
    TRANSACTION_SORTS,
    CategoryService,
    TransactionFilters,
    TransactionService,
    UserService,
)
from stats import StatsService


logger = logging.getLogger(__name__)


def ok(data: object, **extra: object) -> dict[str, object]:
    payload: dict[str, object] = {"success": True}
    payload.update(extra)
    payload["data"] = data
    return payload


def user_to_dict(user: User) -> dict[str, object]:
    return {"id": user.id, "name": user.name, "email": user.email}


def category_to_dict(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "created_at": category.created_at.isoformat(),
    }


def transaction_to_dict(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "category_id": txn.category_id,
        "category": (
            {
                "name": txn.category.name,
                "color": txn.category.color,
                "type": txn.category.type.value,
            }
            if txn.category
            else None
        ),
        "note": txn.note,
    }


def get_db(request: Request):
    with request.app.state.database.session_scope() as db:
        yield db


def current_user_id(request: Request, db: Session = Depends(get_db)) -> int:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    try:
        user_id = read_token(token.strip())
    except InvalidToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    if db.get(User, user_id) is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user_id


def date_range_from_request(request: Request) -> DateRange:
    try:
        return resolve_date_range(
            request.query_params.get("start"), request.query_params.get("end")
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail=f"{name} must be an integer"
        ) from exc


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    sort = request.query_params.get("sort") or "-date"
    category_id = None
    if request.query_params.get("category_id"):
        category_id = int_param(request, "category_id", 0)
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError as exc:
            raise HTTPException(
                status_code=400, detail=f"Unknown transaction type: {type_param}"
            ) from exc
    if sort not in TRANSACTION_SORTS:
        raise HTTPException(status_code=400, detail=f"Unsupported sort: {sort}")
    return TransactionFilters(
        type=txn_type,
        category_id=category_id,
        date_range=date_range_from_request(request),
        query=request.query_params.get("search"),
        sort=sort,
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = [
        f"{'.'.join(str(p) for p in err.get('loc', ())[1:])}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422, content={"success": False, "error": "; ".join(messages)}
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"request_failed: path={request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


def create_app(database: Optional[Database] = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Finance Tracker")
    app.state.database = database or Database(settings.database_url)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.on_event("startup")
    def startup_event():
        app.state.database.connect()

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.database.dispose()

    @app.get("/")
    def health(request: Request):
        request.app.state.database.ping()
        return {"message": "Finance Tracker API is running"}

    # auth

    @app.post("/api/auth/register", status_code=201)
    def register(data: UserIn, db: Session = Depends(get_db)):
        try:
            user = UserService(db).register(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok({"token": issue_token(user.id), "user": user_to_dict(user)})

    @app.post("/api/auth/login")
    def login(data: LoginIn, db: Session = Depends(get_db)):
        try:
            user = UserService(db).authenticate(data.email, data.password)
        except ValueError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        return ok({"token": issue_token(user.id), "user": user_to_dict(user)})

    @app.get("/api/auth/me")
    def me(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
        return ok(user_to_dict(UserService(db).get(user_id)))

    @app.put("/api/auth/profile")
    def update_profile(
        data: ProfileIn,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            user = UserService(db).update_profile(user_id, data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok(user_to_dict(user))

    @app.put("/api/auth/password")
    def update_password(
        data: PasswordIn,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            UserService(db).change_password(
                user_id, data.current_password, data.new_password
            )
        except ValueError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        return {"success": True, "message": "Password updated"}

    # categories

    @app.get("/api/categories")
    def list_categories(
        request: Request,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        type_param = request.query_params.get("type")
        try:
            txn_type = TransactionType(type_param) if type_param else None
        except ValueError as exc:
            raise HTTPException(
                status_code=400, detail=f"Unknown transaction type: {type_param}"
            ) from exc
        categories = CategoryService(db, user_id).list_all(
            txn_type, request.query_params.get("search")
        )
        return ok(
            [category_to_dict(c) for c in categories], count=len(categories)
        )

    @app.post("/api/categories", status_code=201)
    def create_category(
        data: CategoryIn,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            category = CategoryService(db, user_id).create(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok(category_to_dict(category))

    @app.get("/api/categories/{category_id}")
    def get_category(
        category_id: int,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            category = CategoryService(db, user_id).get(category_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return ok(category_to_dict(category))

    @app.put("/api/categories/{category_id}")
    def update_category(
        category_id: int,
        data: CategoryIn,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        service = CategoryService(db, user_id)
        try:
            service.get(category_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            category = service.update(category_id, data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok(category_to_dict(category))

    @app.delete("/api/categories/{category_id}")
    def delete_category(
        category_id: int,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        service = CategoryService(db, user_id)
        try:
            service.get(category_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            service.delete(category_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "message": "Category deleted"}

    # transactions

    @app.get("/api/transactions")
    def list_transactions(
        request: Request,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        filters = filters_from_request(request)
        page = max(int_param(request, "page", 1), 1)
        limit = min(max(int_param(request, "limit", 10), 1), 100)
        service = TransactionService(db, user_id)
        items = service.list(filters, limit=limit, offset=(page - 1) * limit)
        return ok(
            [transaction_to_dict(txn) for txn in items],
            count=len(items),
            pagination={"page": page, "limit": limit, "total": service.count(filters)},
        )

    @app.post("/api/transactions", status_code=201)
    def create_transaction(
        data: TransactionIn,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            txn = TransactionService(db, user_id).create(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok(transaction_to_dict(txn))

    @app.get("/api/transactions/{transaction_id}")
    def get_transaction(
        transaction_id: int,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            txn = TransactionService(db, user_id).get(transaction_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return ok(transaction_to_dict(txn))

    @app.put("/api/transactions/{transaction_id}")
    def update_transaction(
        transaction_id: int,
        data: TransactionIn,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        service = TransactionService(db, user_id)
        try:
            service.get(transaction_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            txn = service.update(transaction_id, data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok(transaction_to_dict(txn))

    @app.delete("/api/transactions/{transaction_id}")
    def delete_transaction(
        transaction_id: int,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        try:
            TransactionService(db, user_id).delete(transaction_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"success": True, "message": "Transaction deleted"}

    # stats

    @app.get("/api/stats/overview")
    def stats_overview(
        request: Request,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        date_range = date_range_from_request(request)
        return ok(StatsService(db, user_id).overview(date_range))

    @app.get("/api/stats/expenses-by-category")
    def stats_expenses_by_category(
        request: Request,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        date_range = date_range_from_request(request)
        return ok(StatsService(db, user_id).expenses_by_category(date_range))

    @app.get("/api/stats/monthly-summary")
    def stats_monthly_summary(
        request: Request,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        months = int_param(request, "months", settings.monthly_window)
        dense = request.query_params.get("dense", "true").lower() not in (
            "0",
            "false",
            "no",
        )
        try:
            series = StatsService(db, user_id).monthly_summary(months, dense=dense)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ok(series)

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
