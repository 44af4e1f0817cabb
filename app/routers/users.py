from fastapi import APIRouter

from app.config import settings
from app.dependencies import CurrentIdentity, Session
from app.schemas import LoginRequest, RegistrationRequest, UserResponse, UserUpdateRequest
from app.security import issue_token
from app.services import user_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["users"])


@router.post("/users", response_model=UserResponse)
async def register(data: RegistrationRequest, db: Session):
    user = await user_service.register(db, data.user)
    return {"user": user_service.render_user(user, issue_token(user.id))}


@router.post("/users/login", response_model=UserResponse)
async def login(data: LoginRequest, db: Session):
    user = await user_service.login(db, data.user)
    return {"user": user_service.render_user(user, issue_token(user.id))}


@router.get("/user", response_model=UserResponse)
async def get_current_user(identity: CurrentIdentity, db: Session):
    user = await user_service.get_current_user(db, identity)
    return {"user": user_service.render_user(user, identity.token)}


@router.put("/user", response_model=UserResponse)
async def update_current_user(data: UserUpdateRequest, identity: CurrentIdentity, db: Session):
    user = await user_service.update_user(db, identity, data.user)
    return {"user": user_service.render_user(user, identity.token)}
