import logging
from datetime import timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.config import settings
from tripbank.database import get_db, utcnow
from tripbank.models import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: str | None = None, name: str | None = None) -> str:
    expire = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {"sub": user_id, "exp": expire}
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name
    if settings.auth_issuer:
        payload["iss"] = settings.auth_issuer
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict:
    """Verified claims of a bearer token; raises 401 when it is missing a subject or invalid."""
    options = {"verify_iss": bool(settings.auth_issuer)}
    try:
        claims = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            issuer=settings.auth_issuer or None,
            options=options,
        )
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    if not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
    return claims


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The caller's user row, created on first sight of a new identity subject."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    claims = decode_access_token(credentials.credentials)

    user = await db.get(User, claims["sub"])
    if user is None:
        user = User(
            id=claims["sub"],
            email=claims.get("email"),
            name=claims.get("name"),
            image_url=claims.get("picture"),
        )
        db.add(user)
        await db.commit()
        logger.info(f"Registered new user {user.id}")
    return user
