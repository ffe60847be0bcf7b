import os
from datetime           import datetime, timedelta, timezone
from typing             import Optional

from fastapi            import Depends, HTTPException, status
from fastapi.security   import HTTPBearer, HTTPAuthorizationCredentials
from jose               import JWTError, jwt
from pydantic           import BaseModel

from errors             import AuthenticationError

JWT_SECRET_KEY                      = os.getenv("JWT_SECRET_KEY", "your-super-secret-jwt-key-change-in-production")
JWT_ALGORITHM                       = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES     = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))


class TokenData(BaseModel):
    user_id         : str
    username        : str
    token_type      : str = "user"


bearer_scheme       = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    encoded_jwt = jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token") from e


def resolve_actor(token: str) -> TokenData:
    """Turn a bearer token into the actor on whose behalf tools run."""
    payload = decode_token(token)

    if payload.get("token_type", "user") != "user":
        raise AuthenticationError("Invalid token type for this endpoint")

    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")

    return TokenData(
        user_id=str(user_id),
        username=payload.get("username") or payload.get("email") or "User",
        token_type="user",
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenData:
    """Dependency to get the current authenticated user from JWT token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return resolve_actor(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
