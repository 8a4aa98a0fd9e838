"""
Free replaceability analysis.

Validates the pasted profile, asks the LLM for a score, validates the JSON
reply and stores the result as an anonymous Analysis.
"""

from typing import Annotated, Literal, Optional

import structlog
from pydantic import BaseModel, Field, StringConstraints, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Analysis
from app.services.errors import InvalidInputError, ResponseShapeError, UpstreamError
from app.services.llm_utils import LLMClient, LLMUnavailableError, calculate_cost
from app.services.prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from app.services.utils import parse_llm_json, snippet

logger = structlog.get_logger()

MIN_PROFILE_LENGTH = 20
MAX_PROFILE_LENGTH = 10_000

RiskLevel = Literal["low", "medium", "high"]
NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class AnalysisResult(BaseModel):
    """Structured score returned by the free analysis."""
    replaceability_score: int = Field(ge=0, le=100)
    automation_risk: RiskLevel
    skill_defensibility_score: int = Field(ge=0, le=100)
    market_saturation: RiskLevel
    reasons: list[NonEmptyStr] = Field(min_length=1, max_length=10)
    recommended_upgrades: list[NonEmptyStr] = Field(min_length=1, max_length=10)
    comparison_percentile: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    why_this_matters: Optional[str] = None
    if_you_do_nothing: Optional[str] = None


def validate_profile(profile_text: str) -> str:
    """Trim and length-check the profile. Raises InvalidInputError."""
    trimmed = (profile_text or "").strip()
    if len(trimmed) < MIN_PROFILE_LENGTH:
        raise InvalidInputError(
            f"Profile text is too short. Provide at least {MIN_PROFILE_LENGTH} characters "
            "describing the role or background."
        )
    if len(trimmed) > MAX_PROFILE_LENGTH:
        raise InvalidInputError(
            f"Profile text exceeds the maximum allowed length of {MAX_PROFILE_LENGTH} characters."
        )
    return trimmed


def format_validation_error(error: ValidationError) -> str:
    issues = "; ".join(
        f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}"
        for issue in error.errors()
    )
    return f"Validation failed: {issues}"


async def analyze_profile(llm: LLMClient, profile_text: str) -> AnalysisResult:
    """
    Run the scoring pipeline for one profile.

    Raises InvalidInputError (400), UpstreamError (502) or
    ResponseShapeError (422).
    """
    trimmed = validate_profile(profile_text)

    try:
        response = await llm.complete(
            system=ANALYSIS_SYSTEM_PROMPT,
            prompt=build_analysis_prompt(trimmed),
            max_tokens=1024,
            temperature=0.1,
        )
    except LLMUnavailableError as e:
        raise UpstreamError(str(e)) from e
    except Exception as e:
        logger.warning("analysis.llm_failed", error=str(e))
        raise UpstreamError(f"LLM request failed: {e}") from e

    logger.info(
        "analysis.llm_call",
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
        cost_usd=round(calculate_cost(response), 6),
    )

    try:
        parsed = parse_llm_json(response.text)
    except ValueError as e:
        raise ResponseShapeError(
            f"Failed to parse LLM response as JSON. Raw response: {snippet(response.text, 200)}"
        ) from e

    try:
        return AnalysisResult.model_validate(parsed)
    except ValidationError as e:
        raise ResponseShapeError(format_validation_error(e)) from e


async def store_analysis(
    db: AsyncSession, profile_text: str, result: AnalysisResult
) -> Optional[str]:
    """
    Persist an analysis and return its id.

    A store failure is logged and yields None; the caller still returns the
    score to the user, it just cannot be purchased later.
    """
    analysis = Analysis(
        profile_text=profile_text.strip(),
        result=result.model_dump(exclude_none=True),
    )
    try:
        db.add(analysis)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("analysis.store_failed", error=str(e))
        return None
    return analysis.id
