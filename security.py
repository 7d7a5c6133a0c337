import logging
import os
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, parse_object_id
from errors import AuthenticationError, ConflictError
from schemas import Principal, Role, User

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey-change")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/signin")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def get_user_by_email(db, email: str):
    return db["user"].find_one({"email": email})


def get_user(db, user_id: str):
    oid = parse_object_id(user_id)
    if oid is None:
        return None
    return db["user"].find_one({"_id": oid})


def to_principal(user: dict) -> Principal:
    return Principal(
        id=str(user["_id"]),
        name=user.get("name", ""),
        email=user["email"],
        role=user.get("role", Role.USER.value),
    )


def register_user(db, name: str, email: str, password: str, role: Role = Role.USER) -> str:
    if get_user_by_email(db, email):
        logger.warning("sign-up rejected, email in use: %s", email)
        raise ConflictError("Error: Email is already in use!")
    user = User(name=name, email=email, password_hash=get_password_hash(password), role=role)
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise ConflictError("Error: Email is already in use!")
    logger.info("registered user %s (%s)", user_id, role.value)
    return user_id


def authenticate(db, email: str, password: str) -> dict:
    """Return a signed token plus the user's public fields, or raise AuthenticationError."""
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user["password_hash"]):
        logger.warning("failed sign-in for %s", email)
        raise AuthenticationError("Invalid email or password")
    principal = to_principal(user)
    token = create_access_token(data={"sub": principal.id, "role": principal.role.value})
    return {
        "token": token,
        "type": "Bearer",
        "id": principal.id,
        "name": principal.name,
        "email": principal.email,
        "role": principal.role.value,
    }


def seed_admin(db, email: str | None, password: str | None, name: str = "Admin"):
    if not email or not password:
        return None
    if get_user_by_email(db, email):
        return None
    return register_user(db, name, email, password, role=Role.ADMIN)


async def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception
    user = get_user(db, user_id)
    if user is None:
        raise credentials_exception
    return to_principal(user)


async def get_current_admin(current: Principal = Depends(get_current_user)) -> Principal:
    if not current.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only")
    return current
