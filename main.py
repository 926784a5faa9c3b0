import logging
import os
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from consistency import ConsistencyEngine
from database import db, ensure_indexes, get_db
from envelope import envelope, parsed_body, serialize
from errors import ApiError, NotFoundError, ServerError, ValidationError
from query import TASK_DEFAULT_LIMIT, USER_DEFAULT_LIMIT, parse_projection, translate
from repository import Repository, TaskRepository, UserRepository
from schemas import TaskIn, UserIn, parse_body

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Task Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["X-Requested-With", "X-HTTP-Method-Override", "Content-Type", "Accept"],
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "X-Requested-With, X-HTTP-Method-Override, Content-Type, Accept",
    "Access-Control-Allow-Methods": "POST, GET, PUT, DELETE, OPTIONS",
}

TASK_FIELDS_REQUIRED = "Task must include name and deadline"
USER_FIELDS_REQUIRED = "User must include name and email"
BAD_QUERY = "Bad request: invalid query parameters"


# -----------------------------
# Error envelopes
# -----------------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=envelope(str(exc.detail)))


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=envelope("Bad request"))


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=envelope("Server error"), headers=CORS_HEADERS)


@app.middleware("http")
async def allow_cross_domain(request: Request, call_next):
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.on_event("startup")
def startup_event():
    if db is None:
        logger.warning("DATABASE_URL is not set; store-backed endpoints will fail")
        return
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        logger.error(f"Could not ensure indexes: {e}")


# -----------------------------
# Helpers
# -----------------------------
def list_documents(repo: Repository, params, default_limit) -> Dict[str, Any]:
    spec = translate(params, default_limit)
    try:
        data = repo.count(spec) if spec.count else [serialize(d) for d in repo.find(spec)]
    except Exception as e:
        logger.info(f"Rejected query on {repo.collection_name}: {e}")
        raise ValidationError(BAD_QUERY)
    return envelope("OK", data)


def get_document(repo: Repository, doc_id: str, select, missing: str) -> Dict[str, Any]:
    projection = parse_projection(select)
    try:
        doc = repo.get(doc_id, projection)
    except PyMongoError as e:
        logger.info(f"Rejected lookup on {repo.collection_name}: {e}")
        raise ValidationError("Bad request")
    if not doc:
        raise NotFoundError(missing)
    return envelope("OK", serialize(doc))


def store_call(message: str, fn, *args):
    try:
        return fn(*args)
    except ApiError:
        raise
    except PyMongoError:
        logger.exception(message)
        raise ServerError(message)


# -----------------------------
# Users
# -----------------------------
@app.get("/api/users")
def list_users(request: Request, database: Database = Depends(get_db)):
    return list_documents(UserRepository(database), request.query_params, USER_DEFAULT_LIMIT)


@app.post("/api/users", status_code=201)
def create_user(body: Dict[str, Any] = Depends(parsed_body), database: Database = Depends(get_db)):
    data = parse_body(UserIn, body, ["name", "email"], USER_FIELDS_REQUIRED)
    user = store_call("Server error creating user", ConsistencyEngine(database).create_user, data)
    return envelope("Created", serialize(user))


@app.get("/api/users/{user_id}")
def get_user(user_id: str, select: str = None, database: Database = Depends(get_db)):
    return get_document(UserRepository(database), user_id, select, "User not found")


@app.put("/api/users/{user_id}")
def update_user(user_id: str, body: Dict[str, Any] = Depends(parsed_body), database: Database = Depends(get_db)):
    data = parse_body(UserIn, body, ["name", "email"], USER_FIELDS_REQUIRED)
    user = store_call("Server error updating user", ConsistencyEngine(database).update_user, user_id, data)
    return envelope("OK", serialize(user))


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(user_id: str, database: Database = Depends(get_db)):
    store_call("Server error deleting user", ConsistencyEngine(database).delete_user, user_id)
    return Response(status_code=204)


# -----------------------------
# Tasks
# -----------------------------
@app.get("/api/tasks")
def list_tasks(request: Request, database: Database = Depends(get_db)):
    return list_documents(TaskRepository(database), request.query_params, TASK_DEFAULT_LIMIT)


@app.post("/api/tasks", status_code=201)
def create_task(body: Dict[str, Any] = Depends(parsed_body), database: Database = Depends(get_db)):
    data = parse_body(TaskIn, body, ["name", "deadline"], TASK_FIELDS_REQUIRED)
    task = store_call("Server error creating task", ConsistencyEngine(database).create_task, data)
    return envelope("Created", serialize(task))


@app.get("/api/tasks/{task_id}")
def get_task(task_id: str, select: str = None, database: Database = Depends(get_db)):
    return get_document(TaskRepository(database), task_id, select, "Task not found")


@app.put("/api/tasks/{task_id}")
def update_task(task_id: str, body: Dict[str, Any] = Depends(parsed_body), database: Database = Depends(get_db)):
    data = parse_body(TaskIn, body, ["name", "deadline"], TASK_FIELDS_REQUIRED)
    task = store_call("Server error updating task", ConsistencyEngine(database).update_task, task_id, data)
    return envelope("OK", serialize(task))


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: str, database: Database = Depends(get_db)):
    store_call("Server error deleting task", ConsistencyEngine(database).delete_task, task_id)
    return envelope("Task Deleted")


# -----------------------------
# Health
# -----------------------------
@app.get("/")
def read_root():
    return envelope("Task Tracker API running")


@app.get("/api/health")
def health(database: Database = Depends(get_db)):
    status = {"database": "Connected", "collections": []}
    try:
        status["collections"] = sorted(database.list_collection_names())[:10]
    except PyMongoError as e:
        logger.error(f"Health check failed: {e}")
        status["database"] = f"Error: {str(e)[:50]}"
    return envelope("OK", status)


@app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
def not_implemented(path: str):
    raise NotFoundError("Endpoint not implemented")


if __name__ == "__main__":
    import uvicorn
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host=host, port=port)
