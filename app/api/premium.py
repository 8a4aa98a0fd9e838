"""
Premium artifact endpoints.

Endpoints:
- POST /v1/premium/protection-plan - 12-month plan, four quarters
- POST /v1/premium/salary-projection - three salary scenarios
- POST /v1/premium/market-comparison - percentile against the market
- POST /v1/premium/ai-simulation - three-year exposure simulation

Every endpoint goes through the access gate, then the generation cache.
Responses are {success, <field>, cached}.
"""

from typing import Annotated, Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import ANALYSIS_ID_REQUIRED, AUTH_REQUIRED, check_access, enforce
from app.core.auth import SessionClaims, get_session_claims
from app.core.config import Settings
from app.core.database import get_db
from app.core.dependencies import get_analytics, get_app_settings, get_generation_locks, get_llm
from app.core.locks import GenerationLocks
from app.core.posthog import PREMIUM_ARTIFACT_GENERATED, Analytics
from app.models import Analysis
from app.services.generation_cache import GenerationCache
from app.services.llm_utils import LLMClient, calculate_cost
from app.services.premium_artifacts import ARTIFACTS, ArtifactKind

logger = structlog.get_logger()

router = APIRouter(prefix="/premium", tags=["Premium"])


# =============================================================================
# Request Models
# =============================================================================


class PremiumRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Presence is checked by the access gate, after the session
    analysis_id: Optional[str] = Field(None, alias="analysisId")


class SalaryProjectionRequest(PremiumRequest):
    salary: float = Field(..., gt=0, strict=True, allow_inf_nan=False)
    country: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


# =============================================================================
# Helpers
# =============================================================================


def premium_session(
    claims: Optional[SessionClaims] = Depends(get_session_claims),
    settings: Settings = Depends(get_app_settings),
) -> Optional[SessionClaims]:
    """401 before the body is validated or anything is loaded."""
    if claims is None and not settings.premium_bypass_enabled:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTH_REQUIRED)
    return claims


class PremiumContext:
    """Resources a premium endpoint needs, resolved once per request."""

    def __init__(
        self,
        claims: Optional[SessionClaims] = Depends(premium_session),
        db: AsyncSession = Depends(get_db),
        settings: Settings = Depends(get_app_settings),
        llm: LLMClient = Depends(get_llm),
        locks: GenerationLocks = Depends(get_generation_locks),
        analytics: Analytics = Depends(get_analytics),
    ):
        self.claims = claims
        self.db = db
        self.settings = settings
        self.llm = llm
        self.locks = locks
        self.analytics = analytics

    async def run(
        self,
        kind: ArtifactKind,
        analysis_id: Optional[str],
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        decision = enforce(await check_access(self.db, self.claims, analysis_id, self.settings))
        if not analysis_id or not analysis_id.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ANALYSIS_ID_REQUIRED)
        analysis_id = analysis_id.strip()

        definition = ARTIFACTS[kind]

        async def generate(analysis: Analysis) -> str:
            response = await self.llm.complete(
                system=definition.system_prompt,
                prompt=definition.build_prompt(analysis, params),
                max_tokens=definition.max_tokens,
                temperature=definition.temperature,
            )
            logger.info(
                "premium.llm_call",
                kind=kind.value,
                analysis_id=analysis_id,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                cost_usd=round(calculate_cost(response), 6),
            )
            return response.text

        cache = GenerationCache(self.db, self.locks, self.settings.generation_timeout_seconds)
        artifact, cached = await cache.get_or_generate(
            decision.user_key,
            analysis_id,
            kind.value,
            generate,
            definition.parse,
            request_params=params,
        )

        if not cached:
            self.analytics.capture(
                decision.user_key,
                PREMIUM_ARTIFACT_GENERATED,
                {"kind": kind.value, "analysis_id": analysis_id, "via": decision.via},
            )
        return {"success": True, definition.response_field: artifact, "cached": cached}


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/protection-plan")
async def protection_plan(body: PremiumRequest, ctx: PremiumContext = Depends()):
    return await ctx.run(ArtifactKind.PROTECTION_PLAN, body.analysis_id)


@router.post("/salary-projection")
async def salary_projection(body: SalaryProjectionRequest, ctx: PremiumContext = Depends()):
    return await ctx.run(
        ArtifactKind.SALARY_PROJECTION,
        body.analysis_id,
        params={"salary": body.salary, "country": body.country},
    )


@router.post("/market-comparison")
async def market_comparison(body: PremiumRequest, ctx: PremiumContext = Depends()):
    return await ctx.run(ArtifactKind.MARKET_COMPARISON, body.analysis_id)


@router.post("/ai-simulation")
async def ai_simulation(body: PremiumRequest, ctx: PremiumContext = Depends()):
    return await ctx.run(ArtifactKind.AI_SIMULATION, body.analysis_id)
