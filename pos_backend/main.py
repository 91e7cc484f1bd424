import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Optional

import psycopg2
import psycopg2.extras
from dotenv import load_dotenv
from fastapi import Cookie, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, EmailStr

from . import app_context
from .app.errors import ServiceError
from .app.security import hash_password, verify_password
from .config import load_app_config, load_mail_config
from .mail import create_email_provider

load_dotenv()

CONFIG = load_app_config()
MAIL_CONFIG = load_mail_config()

JWT_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = CONFIG.session_cookie_name

logger = logging.getLogger("pos_backend")


def get_conn():
    return psycopg2.connect(**CONFIG.db_params())


class UserOut(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str
    is_active: bool = True

    model_config = ConfigDict(frozen=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


def create_access_token(*, subject: str, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=CONFIG.jwt_exp_minutes)
    payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_delta}
    return jwt.encode(payload, CONFIG.jwt_secret_key, algorithm=JWT_ALGORITHM)


def get_user_by_id(uid: int) -> Optional[UserOut]:
    conn = get_conn()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                "SELECT id, email, name, role, is_active FROM users WHERE id = %s",
                (uid,),
            )
            row = cur.fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return UserOut(**dict(row))


def get_user_with_password(email: str) -> Optional[dict]:
    conn = get_conn()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                """
                SELECT id, email, name, role, is_active, password_hash
                FROM users
                WHERE email = %s
                """,
                (email.strip().lower(),),
            )
            row = cur.fetchone()
    finally:
        conn.close()
    return dict(row) if row else None


def resolve_user_from_session_token(session_token: str) -> Optional[UserOut]:
    try:
        payload = jwt.decode(session_token, CONFIG.jwt_secret_key, algorithms=[JWT_ALGORITHM])
        subject = payload.get("sub")
        if subject is None:
            return None
        user_id = int(subject)
    except (JWTError, ValueError):
        return None

    user = get_user_by_id(user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> UserOut:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = resolve_user_from_session_token(session_token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


app_context.configure(
    get_conn=get_conn,
    get_current_user=get_current_user,
    password_hasher=partial(hash_password, rounds=CONFIG.bcrypt_rounds),
    app_config=CONFIG,
    mail_config=MAIL_CONFIG,
    email_provider=create_email_provider(MAIL_CONFIG),
)

from .app.routes.accounts import router as accounts_router  # noqa: E402
from .app.routes.invitations import router as invitations_router  # noqa: E402
from .app.routes.properties import router as properties_router  # noqa: E402
from .app.routes.usage import router as usage_router  # noqa: E402

app = FastAPI(title="Property Operating System API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Unhandled service error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": dict(exc.payload)})


app.include_router(invitations_router)
app.include_router(properties_router)
app.include_router(accounts_router)
app.include_router(usage_router)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/api/auth/login", response_model=UserOut)
def login(payload: LoginRequest, response: Response) -> UserOut:
    row = get_user_with_password(payload.email)
    if (
        not row
        or not row.get("is_active")
        or not verify_password(payload.password, row.get("password_hash") or "")
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(subject=str(row["id"]))
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        max_age=CONFIG.jwt_exp_minutes * 60,
    )
    return UserOut(**{key: row[key] for key in ("id", "email", "name", "role", "is_active")})


@app.post("/api/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response) -> Response:
    response.delete_cookie(SESSION_COOKIE_NAME)
    response.status_code = status.HTTP_204_NO_CONTENT
    return response


@app.get("/api/auth/me", response_model=UserOut)
def me(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> UserOut:
    return get_current_user(session_token=session_token)
