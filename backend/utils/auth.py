"""
Authentication utilities
"""
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from datetime import datetime, timezone, timedelta
from typing import Optional
import os

from services.dashboard_provider import Session

security = HTTPBearer()
JWT_SECRET = os.environ.get('JWT_SECRET', 'store-dashboard-secret-key-change-in-production')
JWT_ALGORITHM = "HS256"


def create_token(user_id: str, role: str) -> str:
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(days=7)
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


async def user_from_token(token: str) -> dict:
    """Verify a JWT and load the active user it names"""
    from database import get_db

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")

        user = await get_db().users.find_one({"id": user_id}, {"_id": 0, "password": 0})
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        if user.get("status", "active") != "active":
            raise HTTPException(status_code=403, detail="User is inactive")

        return user
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Verify JWT token and return current user"""
    return await user_from_token(credentials.credentials)


async def resolve_session(user: dict, x_active_store: Optional[str] = None) -> Session:
    """
    Resolve a user's session.

    Cashiers are tied to their own store; admins pick one of the stores
    they administer with the X-Active-Store header; superadmins may pick
    any store or none.
    """
    role = user.get("role")
    if role == "cashier" or not x_active_store:
        return Session.from_user(user)

    if role != "superadmin":
        from database import get_db
        store = await get_db().stores.find_one(
            {"id": x_active_store, "admin_uids": user.get("id")},
            {"_id": 0, "id": 1}
        )
        if not store:
            raise HTTPException(status_code=403, detail="Not an admin of this store")

    return Session.from_user(user, active_store_id=x_active_store)


async def get_session(
    user: dict = Depends(get_current_user),
    x_active_store: Optional[str] = Header(None)
) -> Session:
    return await resolve_session(user, x_active_store)


async def get_superadmin_user(user: dict = Depends(get_current_user)):
    """Check if user is superadmin"""
    if user.get("role") != "superadmin":
        raise HTTPException(status_code=403, detail="Superadmin access required")
    return user
