import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import current_user, resolve_session
from config import Settings, configure_logging
from database import Database
from errors import AppError, NotFoundError
from materializer import materialize_and_list_for_date
from models import (
    CatCreate,
    CatUpdate,
    CustomerCreate,
    CustomerSummary,
    CustomerUpdate,
    PredefinedTaskCreate,
    PredefinedTaskUpdate,
    TaskCreate,
    TaskStatus,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

SUMMARY_FIELDS = {"id", "name", "breed", "type", "gender", "birthday"}

router = APIRouter()


def get_database(request: Request) -> Database:
    return request.app.state.database


def _require_predefined_task(database: Database, predefined_task_id: str):
    if database.get_predefined_task(predefined_task_id) is None:
        raise NotFoundError("Predefined task not found")


def _require_user(database: Database, user_id: str):
    if database.get_user(user_id) is None:
        raise NotFoundError("User not found")


def _drop_nulls(updates: dict, *fields: str) -> dict:
    """Remove explicit nulls for fields that cannot be cleared."""
    for field in fields:
        if field in updates and updates[field] is None:
            del updates[field]
    return updates


@router.get("/")
def index() -> dict:
    return {"message": "Pet care scheduler API"}


@router.get("/health")
def health() -> dict:
    return {"message": "OK"}


@router.get("/session")
def get_session(request: Request) -> dict:
    """The user behind the caller's session, or null."""
    return {"user": current_user(request)}


# Predefined tasks

@router.get("/predefined-tasks")
def list_predefined_tasks(database: Database = Depends(get_database)) -> dict:
    return {"predefinedTasks": database.list_predefined_tasks()}


@router.get("/predefined-tasks/{predefined_task_id}")
def get_predefined_task(predefined_task_id: str, database: Database = Depends(get_database)) -> dict:
    predefined_task = database.get_predefined_task(predefined_task_id)
    if not predefined_task:
        raise NotFoundError("Predefined task not found")
    return {"predefinedTask": predefined_task}


@router.post("/predefined-tasks", status_code=201)
def create_predefined_task(
    task_data: PredefinedTaskCreate,
    database: Database = Depends(get_database)
) -> dict:
    predefined_task = database.create_predefined_task(
        task_data.name,
        task_data.description,
        task_data.recurring or []
    )
    return {"predefinedTask": predefined_task}


@router.put("/predefined-tasks/{predefined_task_id}")
def update_predefined_task(
    predefined_task_id: str,
    task_data: PredefinedTaskUpdate,
    database: Database = Depends(get_database)
) -> dict:
    updates = task_data.model_dump(exclude_unset=True, by_alias=False, exclude={"recurring"})
    _drop_nulls(updates, "name")
    predefined_task = database.update_predefined_task(
        predefined_task_id,
        schedules=task_data.recurring,
        **updates
    )
    if not predefined_task:
        raise NotFoundError("Predefined task not found")
    return {"predefinedTask": predefined_task}


@router.delete("/predefined-tasks/{predefined_task_id}")
def delete_predefined_task(predefined_task_id: str, database: Database = Depends(get_database)) -> dict:
    if not database.delete_predefined_task(predefined_task_id):
        raise NotFoundError("Predefined task not found")
    return {"message": "Predefined task deleted successfully"}


# Tasks

@router.get("/tasks")
def list_tasks(
    status: Optional[TaskStatus] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    database: Database = Depends(get_database)
) -> dict:
    return {"tasks": database.list_tasks(status=status, assigned_to=assigned_to)}


@router.get("/tasks/date/{date}")
def get_tasks_for_date(date: str, database: Database = Depends(get_database)) -> dict:
    """Materialize the day's recurring tasks and return everything scheduled that day."""
    return {"tasks": materialize_and_list_for_date(database, date)}


@router.get("/tasks/{task_id}")
def get_task(task_id: str, database: Database = Depends(get_database)) -> dict:
    task = database.get_task(task_id)
    if not task:
        raise NotFoundError("Task not found")
    return {"task": task}


@router.post("/tasks", status_code=201)
def create_task(task_data: TaskCreate, database: Database = Depends(get_database)) -> dict:
    # References are checked before the write so nothing dangles
    _require_predefined_task(database, task_data.predefined_task_id)
    if task_data.assigned_to:
        _require_user(database, task_data.assigned_to)

    task = database.create_task(
        task_data.predefined_task_id,
        task_data.scheduled_on,
        task_data.status,
        task_data.assigned_to,
        task_data.duration
    )
    return {"task": task}


@router.put("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate, database: Database = Depends(get_database)) -> dict:
    updates = task_data.model_dump(exclude_unset=True, by_alias=False)
    _drop_nulls(updates, "predefined_task_id", "scheduled_on", "status")

    if "predefined_task_id" in updates:
        _require_predefined_task(database, updates["predefined_task_id"])
    if updates.get("assigned_to"):
        _require_user(database, updates["assigned_to"])

    task = database.update_task(task_id, **updates)
    if not task:
        raise NotFoundError("Task not found")
    return {"task": task}


@router.delete("/tasks/{task_id}")
def delete_task(task_id: str, database: Database = Depends(get_database)) -> dict:
    if not database.delete_task(task_id):
        raise NotFoundError("Task not found")
    return {"message": "Task deleted successfully"}


# Customers

@router.get("/customers")
def list_customers(database: Database = Depends(get_database)) -> dict:
    return {"customers": database.list_customers()}


@router.get("/customers/{customer_id}")
def get_customer(customer_id: str, database: Database = Depends(get_database)) -> dict:
    customer = database.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return {"customer": customer}


@router.post("/customers", status_code=201)
def create_customer(customer_data: CustomerCreate, database: Database = Depends(get_database)) -> dict:
    return {"customer": database.create_customer(**customer_data.model_dump(by_alias=False))}


@router.put("/customers/{customer_id}")
def update_customer(
    customer_id: str,
    customer_data: CustomerUpdate,
    database: Database = Depends(get_database)
) -> dict:
    updates = _drop_nulls(customer_data.model_dump(exclude_unset=True, by_alias=False), "name", "gender")
    customer = database.update_customer(customer_id, **updates)
    if not customer:
        raise NotFoundError("Customer not found")
    return {"customer": customer}


@router.delete("/customers/{customer_id}")
def delete_customer(customer_id: str, database: Database = Depends(get_database)) -> dict:
    if not database.delete_customer(customer_id):
        raise NotFoundError("Customer not found")
    return {"message": "Customer deleted successfully"}


# Cats

@router.get("/cats")
def list_cats(database: Database = Depends(get_database)) -> dict:
    return {"cats": database.list_cats()}


@router.get("/cats/{cat_id}")
def get_cat(cat_id: str, database: Database = Depends(get_database)) -> dict:
    cat = database.get_cat(cat_id)
    if not cat:
        raise NotFoundError("Cat not found")
    return {"cat": cat}


@router.post("/cats", status_code=201)
def create_cat(cat_data: CatCreate, database: Database = Depends(get_database)) -> dict:
    return {"cat": database.create_cat(**cat_data.model_dump(by_alias=False))}


@router.put("/cats/{cat_id}")
def update_cat(cat_id: str, cat_data: CatUpdate, database: Database = Depends(get_database)) -> dict:
    updates = _drop_nulls(cat_data.model_dump(exclude_unset=True, by_alias=False), "name", "gender")
    cat = database.update_cat(cat_id, **updates)
    if not cat:
        raise NotFoundError("Cat not found")
    return {"cat": cat}


@router.delete("/cats/{cat_id}")
def delete_cat(cat_id: str, database: Database = Depends(get_database)) -> dict:
    if not database.delete_cat(cat_id):
        raise NotFoundError("Cat not found")
    return {"message": "Cat deleted successfully"}


# Dashboard

@router.get("/dashboard/customer/summary")
def customer_summary(
    customer_type: Optional[str] = Query(None, alias="customerType"),
    database: Database = Depends(get_database)
) -> dict:
    customers = [
        CustomerSummary(**customer.model_dump(by_alias=False, include=SUMMARY_FIELDS))
        for customer in database.list_customers(customer_type)
    ]
    return {"customers": customers, "total": len(customers)}


# Error envelope: every failure is {"error": message}

async def handle_app_error(_request: Request, exc: AppError) -> JSONResponse:
    message = exc.message
    if exc.status_code >= 500:
        # Details were logged where the failure happened
        message = "Internal server error"
    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        message = first.get("msg", message)
        if location:
            message = f"{'.'.join(location)}: {message}"
    return JSONResponse(status_code=400, content={"error": message})


async def handle_http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API around an explicit settings object and database handle."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    database = database or Database(settings.database_path)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # Startup
        if settings.run_migrations:
            database.init_db()
        yield
        # Shutdown (nothing to do)

    app = FastAPI(
        title="Pet Care Scheduler",
        lifespan=lifespan,
        dependencies=[Depends(resolve_session)]
    )
    app.state.settings = settings
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
