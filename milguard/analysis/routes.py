from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import BaseModel

from milguard.analysis.aggregator import severity_band
from milguard.analysis.service import AnalysisService
from milguard.core.deps import get_analysis_service, get_current_user, get_storage
from milguard.core.errors import NotFoundError
from milguard.schemas import Analysis, User
from milguard.storage.base import Storage

router = APIRouter(prefix="/api", tags=["analysis"])


class TextAnalysisRequest(BaseModel):
    text: str


def analysis_summary(analysis: Analysis) -> dict:
    data = analysis.to_json()
    data["severity"] = severity_band(analysis.overall_confidence)
    return data


# ======================================================
# ANALYZE
# ======================================================
@router.post("/analyze/text")
async def analyze_text(
    body: TextAnalysisRequest,
    user: User = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
):
    return await service.analyze(user, "text", text=body.text)


@router.post("/analyze/image")
async def analyze_image(
    image: UploadFile = File(...),
    user: User = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
):
    # One byte past the limit is enough to reject an oversized upload
    data = await image.read(service.max_upload_bytes + 1)
    return await service.analyze(
        user, "image", data=data, file_name=image.filename, mime_type=image.content_type
    )


@router.post("/analyze/audio")
async def analyze_audio(
    audio: UploadFile = File(...),
    user: User = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
):
    data = await audio.read(service.max_upload_bytes + 1)
    return await service.analyze(
        user, "audio", data=data, file_name=audio.filename, mime_type=audio.content_type
    )


# ======================================================
# HISTORY
# ======================================================
@router.get("/analyses")
def list_analyses(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """Caller's analyses, newest first."""
    return {"analyses": [analysis_summary(a) for a in storage.get_analyses_by_user(user.id, limit=limit)]}


@router.get("/analyses/{analysis_id}")
def get_analysis(
    analysis_id: str,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    analysis = storage.get_analysis(analysis_id)
    # Other users' analyses look exactly like missing ones
    if not analysis or analysis.user_id != user.id:
        raise NotFoundError("Analysis not found")
    return analysis_summary(analysis)
