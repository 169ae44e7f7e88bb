import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from config import Settings
from database import Database, get_db
from models import UserModel
from schemas import AuthData, Envelope, LoginRequest, SignupRequest, UserOut

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# ----------------------------------------------------------------------------
# Password & token helpers
# ----------------------------------------------------------------------------

def make_password_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


async def get_password_hash(pwd_context: CryptContext, password: str) -> str:
    return await run_in_threadpool(pwd_context.hash, password)


async def verify_password(pwd_context: CryptContext, plain_password: str, password_hash: str) -> bool:
    return await run_in_threadpool(pwd_context.verify, plain_password, password_hash)


def create_access_token(settings: Settings, data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(settings: Settings, token: str) -> Optional[str]:
    """Return the user id carried by a token, or None if it cannot be trusted."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    return user_id if isinstance(user_id, str) and user_id else None


def normalize_email(email: Optional[str]) -> str:
    return email.strip().lower() if isinstance(email, str) else ""


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[UserModel]:
    result = await db.execute(select(UserModel).where(UserModel.email == email))
    return result.scalar_one_or_none()


def _auth_response(settings: Settings, user: UserModel, message: str, status_code: int) -> JSONResponse:
    data = AuthData(
        user=UserOut.model_validate(user),
        token=create_access_token(settings, {"sub": user.id}),
    )
    return JSONResponse(
        status_code=status_code,
        content=Envelope(message=message, data=data.model_dump()).to_json(),
    )

# ----------------------------------------------------------------------------
# Current user dependency
# ----------------------------------------------------------------------------

async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserModel:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    user_id = decode_access_token(request.app.state.settings, token)
    if user_id is None:
        raise credentials_exception

    result = await db.execute(select(UserModel).where(UserModel.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception
    return user

# ----------------------------------------------------------------------------
# Demo identity
# ----------------------------------------------------------------------------

async def ensure_demo_user(database: Database, settings: Settings, pwd_context: CryptContext) -> None:
    email = normalize_email(settings.DEMO_USER_EMAIL)
    async with database.sessionmaker() as db:
        if await get_user_by_email(db, email):
            logger.info("Demo user ready: %s", email)
            return

        db.add(
            UserModel(
                name=settings.DEMO_USER_NAME,
                email=email,
                password_hash=await get_password_hash(pwd_context, settings.DEMO_USER_PASSWORD),
            )
        )
        await db.commit()
    logger.info("Demo user created: %s", email)

# ----------------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------------

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, request: Request, db: AsyncSession = Depends(get_db)):
    name = payload.name.strip() if payload.name else ""
    email = normalize_email(payload.email)

    if not name or not email or not payload.password:
        raise HTTPException(status_code=400, detail="Name, email and password are required")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    try:
        if await get_user_by_email(db, email):
            raise HTTPException(status_code=409, detail="Email already in use")

        user = UserModel(
            name=name,
            email=email,
            password_hash=await get_password_hash(request.app.state.pwd_context, payload.password),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        # Lost a race with a concurrent signup for the same address
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already in use")
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to register user")
        raise HTTPException(status_code=500, detail="Failed to register user")

    logger.info("Registered user %s", user.id)
    return _auth_response(request.app.state.settings, user, "User registered successfully", status.HTTP_201_CREATED)


@router.post("/login")
async def login(payload: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    email = normalize_email(payload.email)
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    try:
        user = await get_user_by_email(db, email)
    except SQLAlchemyError:
        logger.exception("Failed to login")
        raise HTTPException(status_code=500, detail="Failed to login")

    if not user or not await verify_password(request.app.state.pwd_context, payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return _auth_response(request.app.state.settings, user, "Login successful", status.HTTP_200_OK)


@router.post("/logout")
async def logout(current_user: UserModel = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    return Envelope(message="Logout successful").to_json()


@router.get("/me")
async def me(current_user: UserModel = Depends(get_current_user)):
    return Envelope(data={"user": UserOut.model_validate(current_user).model_dump()}).to_json()
