import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
import uploads
from database import create_document, get_db
from errors import BadRequestError, duplicate_key_handler, http_exception_handler, validation_exception_handler
from routers import admin, auth, companies, medicines, staff, stockists, upload, users
from routers.auth import RegisterRequest, user_summary
from schemas import User
from security import generate_token, hash_password

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    uploads.upload_dir()
    if database.db is not None:
        try:
            database.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error("Index creation failed: %s", e)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; data endpoints will answer 500")
    yield


# App and CORS
app = FastAPI(title="MedTrap API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)

for module in (auth, users, companies, medicines, stockists, upload, staff, admin):
    app.include_router(module.router)
app.include_router(upload.files_router)


# Bootstrap route: creates the first admin account, refused once one exists
@app.post("/init/bootstrap", status_code=status.HTTP_201_CREATED)
def bootstrap_admin(payload: RegisterRequest, db: Database = Depends(get_db)):
    if db["user"].count_documents({"role": "admin"}) > 0:
        raise BadRequestError("Admin already exists")
    user_doc = User(
        **payload.model_dump(exclude={"password"}),
        password_hash=hash_password(payload.password),
        role="admin",
        is_verified=True,
    ).model_dump(by_alias=True, exclude_none=True)
    user_doc["_id"] = create_document(db, "user", user_doc)
    logger.info("Bootstrap admin %s created", user_doc["email"])
    return {
        "success": True,
        "message": "Admin created",
        "data": {"token": generate_token(user_doc["_id"]), "user": user_summary(user_doc)},
    }


# Utility endpoints
@app.get("/")
def root():
    return {"success": True, "message": "MedTrap API running"}


@app.get("/test")
def test_database():
    db = database.db
    try:
        collections = db.list_collection_names() if db is not None else []
        return {"backend": "ok", "database": "ok" if db is not None else "missing", "collections": collections}
    except PyMongoError as e:
        return {"backend": "ok", "database": f"error: {e}"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT)
