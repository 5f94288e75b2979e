from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db
from errors import AuthError, ForbiddenError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def generate_token(user_id) -> str:
    return create_access_token({"sub": str(user_id)})


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Database = Depends(get_db)) -> dict:
    if not token:
        raise AuthError("Not authorized to access this route")
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id = payload.get("sub")
    except JWTError:
        raise AuthError("Not authorized, token failed")
    if not user_id or not ObjectId.is_valid(user_id):
        raise AuthError("Not authorized, token failed")
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise AuthError("No user found with this token")
    if user.get("status") != "active":
        raise AuthError("Account is deactivated")
    return user


def require_role(*roles: str):
    def role_dep(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") not in roles:
            raise ForbiddenError(f"User role {current_user.get('role')} is not authorized to access this route")
        return current_user
    return role_dep


require_admin = require_role("admin")
