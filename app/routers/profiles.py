from fastapi import APIRouter

from app.config import settings
from app.dependencies import CurrentIdentity, OptionalIdentity, Session
from app.schemas import ProfileResponse
from app.services import user_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/profiles", tags=["profiles"])


@router.get("/{username}", response_model=ProfileResponse)
async def get_profile(username: str, viewer: OptionalIdentity, db: Session):
    return {"profile": await user_service.get_profile(db, username, viewer)}


@router.post("/{username}/follow", response_model=ProfileResponse)
async def follow(username: str, identity: CurrentIdentity, db: Session):
    return {"profile": await user_service.follow(db, identity, username)}


@router.delete("/{username}/follow", response_model=ProfileResponse)
async def unfollow(username: str, identity: CurrentIdentity, db: Session):
    return {"profile": await user_service.unfollow(db, identity, username)}
