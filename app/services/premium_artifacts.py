"""
Premium artifact definitions.

Each kind has an output schema (checked before anything is cached), the
field name the API returns it under, and the prompt used to generate it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt, ValidationError, field_validator

from app.models import Analysis
from app.services.prompts import (
    AI_SIMULATION_SYSTEM_PROMPT,
    MARKET_COMPARISON_SYSTEM_PROMPT,
    PROTECTION_PLAN_SYSTEM_PROMPT,
    SALARY_PROJECTION_SYSTEM_PROMPT,
    build_ai_simulation_prompt,
    build_market_comparison_prompt,
    build_protection_plan_prompt,
    build_salary_projection_prompt,
)
from app.services.utils import parse_llm_json

Number = Union[StrictInt, StrictFloat]


class ArtifactKind(str, Enum):
    PROTECTION_PLAN = "protection_plan"
    SALARY_PROJECTION = "salary_projection"
    MARKET_COMPARISON = "market_comparison"
    AI_SIMULATION = "ai_simulation"


# =============================================================================
# Output Schemas
# =============================================================================


class QuarterPlan(BaseModel):
    quarter: int = Field(ge=1, le=4)
    objective: str
    skill_focus: str
    project_suggestion: str
    career_positioning: str


class ProtectionPlanOutput(BaseModel):
    quarters: list[QuarterPlan] = Field(min_length=4, max_length=4)


class SalaryScenario(BaseModel):
    id: Literal["no_change", "moderate_upskill", "ai_resistant_pivot"]
    label: str
    description: str
    salary_now: Number
    salary_year_1: Number
    salary_year_3: Number
    risk_commentary: str


class SalaryProjectionOutput(BaseModel):
    scenarios: list[SalaryScenario] = Field(min_length=3, max_length=3)


class ComparisonPoint(BaseModel):
    area: str
    detail: str


class MarketComparisonOutput(BaseModel):
    percentile: Number
    percentile_label: str = ""
    summary: str = ""
    strengths: list[ComparisonPoint]
    weaknesses: list[ComparisonPoint]
    positioning_advice: str = ""

    @field_validator("percentile")
    @classmethod
    def clamp_percentile(cls, value: float) -> int:
        return max(0, min(100, round(value)))


class YearExposure(BaseModel):
    year: int = Field(ge=1, le=3)
    exposure_level: Literal["low", "medium", "high", "critical"]
    headline: str
    key_change: str


class TaskItem(BaseModel):
    task: str
    reason: str


class SimulationOutput(BaseModel):
    summary: str
    years: list[YearExposure] = Field(min_length=3, max_length=3)
    tasks_at_risk: list[TaskItem]
    tasks_safe: list[TaskItem]


# =============================================================================
# Definitions
# =============================================================================


@dataclass(frozen=True)
class ArtifactDefinition:
    kind: ArtifactKind
    response_field: str
    output_model: type[BaseModel]
    system_prompt: str
    temperature: float
    max_tokens: int = 2048
    # Return only this field of the validated output (e.g. the quarters list)
    unwrap: Optional[str] = None

    def parse(self, raw_text: str) -> Any:
        """
        Parse and validate generator output.

        RAISES
        ------
        ValueError
            Not JSON, or JSON of the wrong shape
        """
        data = parse_llm_json(raw_text)
        try:
            validated = self.output_model.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid {self.kind.value} structure: {e.error_count()} error(s)") from e
        dumped = validated.model_dump()
        return dumped[self.unwrap] if self.unwrap else dumped

    def build_prompt(self, analysis: Analysis, params: Optional[dict] = None) -> str:
        result = analysis.result or {}
        params = params or {}
        if self.kind is ArtifactKind.PROTECTION_PLAN:
            return build_protection_plan_prompt(result)
        if self.kind is ArtifactKind.SALARY_PROJECTION:
            return build_salary_projection_prompt(result, params["salary"], params["country"])
        if self.kind is ArtifactKind.MARKET_COMPARISON:
            return build_market_comparison_prompt(result, analysis.profile_text)
        return build_ai_simulation_prompt(result, analysis.profile_text)


ARTIFACTS: dict[ArtifactKind, ArtifactDefinition] = {
    ArtifactKind.PROTECTION_PLAN: ArtifactDefinition(
        kind=ArtifactKind.PROTECTION_PLAN,
        response_field="plan",
        output_model=ProtectionPlanOutput,
        system_prompt=PROTECTION_PLAN_SYSTEM_PROMPT,
        temperature=0.6,
        unwrap="quarters",
    ),
    ArtifactKind.SALARY_PROJECTION: ArtifactDefinition(
        kind=ArtifactKind.SALARY_PROJECTION,
        response_field="scenarios",
        output_model=SalaryProjectionOutput,
        system_prompt=SALARY_PROJECTION_SYSTEM_PROMPT,
        temperature=0.4,  # steadier numbers
        unwrap="scenarios",
    ),
    ArtifactKind.MARKET_COMPARISON: ArtifactDefinition(
        kind=ArtifactKind.MARKET_COMPARISON,
        response_field="comparison",
        output_model=MarketComparisonOutput,
        system_prompt=MARKET_COMPARISON_SYSTEM_PROMPT,
        temperature=0.35,
    ),
    ArtifactKind.AI_SIMULATION: ArtifactDefinition(
        kind=ArtifactKind.AI_SIMULATION,
        response_field="simulation",
        output_model=SimulationOutput,
        system_prompt=AI_SIMULATION_SYSTEM_PROMPT,
        temperature=0.5,
    ),
}
