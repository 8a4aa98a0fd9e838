"""
Free analysis endpoint.

POST /v1/analyze - Score a pasted profile and store it as an anonymous Analysis
"""

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_analytics, get_llm
from app.core.posthog import ANALYSIS_COMPLETED, Analytics
from app.services.analysis import analyze_profile, store_analysis
from app.services.llm_utils import LLMClient

logger = structlog.get_logger()

router = APIRouter(tags=["Analysis"])


class AnalyzeRequest(BaseModel):
    profile: str


@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    db: AsyncSession = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    analytics: Analytics = Depends(get_analytics),
):
    """
    Run the free replaceability analysis.

    Returns {success, data, analysisId}. analysisId is null when the result
    could not be stored; the score is still returned.
    """
    result = await analyze_profile(llm, body.profile)
    analysis_id = await store_analysis(db, body.profile, result)

    analytics.capture(
        analysis_id or "anonymous",
        ANALYSIS_COMPLETED,
        {
            "replaceability_score": result.replaceability_score,
            "automation_risk": result.automation_risk,
            "stored": analysis_id is not None,
        },
    )
    return {
        "success": True,
        "data": result.model_dump(exclude_none=True),
        "analysisId": analysis_id,
    }
