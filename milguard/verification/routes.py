from fastapi import APIRouter, Depends
from pydantic import BaseModel

from milguard.core.deps import get_current_user
from milguard.schemas import User
from milguard.verification.tools import fact_check_lookup, reverse_image_search, score_source_credibility

router = APIRouter(prefix="/api/verify", tags=["verification"])


class ReverseImageRequest(BaseModel):
    imageUrl: str


class FactCheckRequest(BaseModel):
    query: str


class SourceRequest(BaseModel):
    url: str


@router.post("/reverse-image")
def reverse_image(body: ReverseImageRequest, user: User = Depends(get_current_user)):
    return reverse_image_search(body.imageUrl)


@router.post("/fact-check")
async def fact_check(body: FactCheckRequest, user: User = Depends(get_current_user)):
    return await fact_check_lookup(body.query)


@router.post("/source")
def source_credibility(body: SourceRequest, user: User = Depends(get_current_user)):
    return score_source_credibility(body.url)
