from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.orm import Session
from dotenv import load_dotenv
import logging
import os

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ─── App created FIRST before any include_router ─────────────────────────────
app = FastAPI(
    title="CodeDrop API",
    description="Share files and text behind a 6-digit access code",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Register share router ────────────────────────────────────────────────────
from share_routes import router as share_router, get_storage
app.include_router(share_router)

from database import Base, engine, get_db
import models, schemas
from errors import ValidationError, NotFoundError, ForbiddenError, ConflictError, StoreError
from security import hash_password, verify_password, validate_password_strength
from auth import create_access_token
from identity import require_user_id

Base.metadata.create_all(bind=engine)


# ─── Exception handlers ───────────────────────────────────────────────────────

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
@app.exception_handler(ForbiddenError)
async def not_found_handler(request: Request, exc: Exception):
    # Non-owners get the same answer as for a missing share
    logger.info(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=404, content={"detail": "Share not found"})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"detail": "Could not create the share, please try again"})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"{type(exc).__name__}: {str(exc)}"}
    )


# ─── Health ───────────────────────────────────────────────────────────────────

@app.get("/health", tags=["System"])
def health():
    return {"status": "ok", "service": "CodeDrop", "version": "1.0.0", "storage": get_storage().get_health()}


# ─── Auth ─────────────────────────────────────────────────────────────────────

@app.post("/register", response_model=schemas.Token, status_code=201, tags=["Auth"])
def register(user: schemas.UserCreate, db: Session = Depends(get_db)):
    ok, reason = validate_password_strength(user.password)
    if not ok:
        raise HTTPException(status_code=400, detail=reason)
    if not user.name.strip():
        raise HTTPException(status_code=400, detail="Please enter your name")

    email = user.email.lower()
    if db.execute(select(models.User).where(models.User.email == email)).scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    db_user = models.User(
        name=user.name.strip(),
        email=email,
        password_hash=hash_password(user.password),
    )
    db.add(db_user)
    db.commit()
    logger.info(f"User registered: {db_user.id}")

    token = create_access_token({"sub": db_user.id, "name": db_user.name})
    return {"access_token": token, "token_type": "bearer"}


@app.post("/login", response_model=schemas.Token, tags=["Auth"])
def login(user: schemas.UserLogin, db: Session = Depends(get_db)):
    db_user = db.execute(
        select(models.User).where(models.User.email == user.email.lower())
    ).scalar_one_or_none()

    if not db_user or not db_user.is_active or not verify_password(user.password, db_user.password_hash):
        logger.info(f"Failed login for {user.email}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token({"sub": db_user.id, "name": db_user.name})
    return {"access_token": token, "token_type": "bearer"}


@app.get("/me", response_model=schemas.UserOut, tags=["Auth"])
def me(user_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    db_user = db.get(models.User, user_id)
    return {"id": db_user.id, "name": db_user.name, "email": db_user.email}
