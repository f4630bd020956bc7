"""
Authentication and authorization utilities for admin endpoints
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from datetime import datetime, timezone
import asyncio
import uuid

from examprep.dependencies import get_document_store, get_supabase_service
from examprep.models.database import UserProfile
from examprep.services.document_store import DocumentStore, document_path
from examprep.utils.constants import USERS, UserRole
from examprep.utils.error_handler import UnauthorizedError, ForbiddenError
from examprep.utils.logger import logger


security = HTTPBearer(auto_error=False)


def verify_jwt_token(token: str) -> Optional[dict]:
    """
    Verify JWT token with Supabase Auth and extract user information

    Args:
        token: JWT token string

    Returns:
        User information dictionary or None if invalid
    """
    try:
        supabase = get_supabase_service().get_client()
        if not supabase:
            return None

        user_response = supabase.auth.get_user(token)

        if user_response and user_response.user:
            user = user_response.user

            token_metadata = getattr(user_response, 'token_metadata', {}) or {}
            exp = token_metadata.get('exp')
            if exp and datetime.fromtimestamp(exp, tz=timezone.utc) < datetime.now(timezone.utc):
                logger.warning("Token has expired")
                return None

            return {
                "id": user.id,
                "email": user.email or "",
                "role": user.user_metadata.get("role", "user") if user.user_metadata else "user",
            }

        return None
    except Exception as e:
        logger.error(f"Token verification error: {str(e)}", exc_info=True)
        return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Dependency to get current authenticated user

    Raises:
        UnauthorizedError: If authentication fails
    """
    if not hasattr(request.state, "request_id"):
        request.state.request_id = str(uuid.uuid4())

    if not credentials:
        logger.warning(
            "Missing authentication credentials",
            extra={"request_id": request.state.request_id}
        )
        raise UnauthorizedError("Authentication required. Please provide a valid token.")

    # supabase-py is synchronous
    user = await asyncio.to_thread(verify_jwt_token, credentials.credentials)

    if not user:
        logger.warning(
            "Invalid or expired token",
            extra={"request_id": request.state.request_id}
        )
        raise UnauthorizedError("Invalid or expired token")

    request.state.user_id = user["id"]
    return user


async def get_current_admin_user(
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store)
) -> dict:
    """
    Dependency to verify admin user

    The role comes from the token's user metadata, falling back to the
    role on the user's document.

    Raises:
        ForbiddenError: If user is not an admin
    """
    role = current_user.get("role")
    if role != UserRole.ADMIN.value:
        profile = UserProfile.from_document(await store.get(document_path(USERS, current_user["id"])))
        role = profile.role.value if profile else role

    if role != UserRole.ADMIN.value:
        logger.warning(
            "Admin access required",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "user_id": current_user.get("id")
            }
        )
        raise ForbiddenError("Admin access required")

    return {**current_user, "role": role}
