from fastapi import Depends, HTTPException, Header
from sqlalchemy.orm import Session
from app.db.database import get_db
from app.repositories.split_repository import SplitRepository
from app.services.auth.jwt_handler import get_current_user


def get_current_user_id(access_token: str = Header(..., description="Access token (without Bearer)")):
    """Extract current user ID from JWT token"""
    if access_token.startswith("Bearer "):
        access_token = access_token.replace("Bearer ", "")
    user_id = get_current_user(access_token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def get_split_repository(db: Session = Depends(get_db)) -> SplitRepository:
    """Per-request store access for the settlement engine"""
    return SplitRepository(db)
