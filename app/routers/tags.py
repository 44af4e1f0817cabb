from fastapi import APIRouter

from app.config import settings
from app.dependencies import Session
from app.schemas import TagsResponse
from app.services import article_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["tags"])


@router.get("/tags", response_model=TagsResponse)
async def list_tags(db: Session):
    return {"tags": await article_service.get_tags(db)}
