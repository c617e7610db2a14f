"""
Structured schemas for provider responses: the interview report and
answer validation. Field names on the wire are camelCase; Python code
uses snake_case attributes.
"""
import logging
from typing import Annotated, Any, List

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from ..infrastructure.llm.client import extract_json_object

logger = logging.getLogger("schemas")


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


StrList = Annotated[List[str], BeforeValidator(_as_str_list)]


def _clamp_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class _ScoredSection(_Schema):
    score: int = 70

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        return _clamp_score(v)


class OverallPerformance(_ScoredSection):
    summary: str = ""
    strengths: StrList = Field(default_factory=list)
    weaknesses: StrList = Field(default_factory=list)


class TechnicalKnowledge(_ScoredSection):
    assessment: str = ""
    areas_of_expertise: StrList = Field(default_factory=list, alias="areasOfExpertise")
    gaps: StrList = Field(default_factory=list)


class ConfidenceLevel(_ScoredSection):
    assessment: str = ""
    indicators: StrList = Field(default_factory=list)


class JobSuitability(_ScoredSection):
    assessment: str = ""
    alignment: StrList = Field(default_factory=list)
    concerns: StrList = Field(default_factory=list)


class HiringLikelihood(_ScoredSection):
    assessment: str = ""
    factors: StrList = Field(default_factory=list)
    recommendation: str = ""


class ConversationAnalysis(_Schema):
    coherence: str = ""
    consistency: str = ""
    depth: str = ""
    narrative: str = ""


class Improvement(_Schema):
    category: str = "General"
    suggestion: str = ""
    priority: str = "Medium"
    evidence: str = ""


class InterviewReport(_Schema):
    """Multi-section interview report."""
    overall_performance: OverallPerformance = Field(default_factory=OverallPerformance, alias="overallPerformance")
    technical_knowledge: TechnicalKnowledge = Field(default_factory=TechnicalKnowledge, alias="technicalKnowledge")
    confidence_level: ConfidenceLevel = Field(default_factory=ConfidenceLevel, alias="confidenceLevel")
    job_suitability: JobSuitability = Field(default_factory=JobSuitability, alias="jobSuitability")
    hiring_likelihood: HiringLikelihood = Field(default_factory=HiringLikelihood, alias="hiringLikelihood")
    conversation_analysis: ConversationAnalysis = Field(default_factory=ConversationAnalysis, alias="conversationAnalysis")
    improvements: List[Improvement] = Field(default_factory=list)
    considerations: StrList = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> 'InterviewReport':
        return cls.model_validate(data)


class AnswerValidation(_Schema):
    is_valid: bool = Field(default=True, alias="isValid")
    feedback: str = ""


def default_report(raw_text: str = "") -> InterviewReport:
    """Report used when the provider answered with prose instead of JSON."""
    return InterviewReport(
        overallPerformance=OverallPerformance(
            summary="Interview completed. Review the detailed analysis below."),
        technicalKnowledge=TechnicalKnowledge(assessment=raw_text[:200]),
        confidenceLevel=ConfidenceLevel(
            assessment="Confidence level assessed based on communication style."),
        jobSuitability=JobSuitability(assessment="Suitability assessed based on responses."),
        hiringLikelihood=HiringLikelihood(
            assessment="Based on overall performance.",
            recommendation="Continue practicing and improving."),
    )


def build_basic_report(answers: List[str]) -> InterviewReport:
    """Heuristic report built locally when the provider keeps throttling."""
    total = len(answers)
    avg_length = sum(len(a) for a in answers) / total if total else 0
    return InterviewReport(
        overallPerformance=OverallPerformance(
            score=min(75, max(50, int(avg_length // 10))),
            summary=(f"Interview completed with {total} responses. "
                     "Review your answers to identify areas for improvement."),
            strengths=["Engaged in conversation", "Provided responses to questions"] if answers else [],
            weaknesses=["Continue practicing to improve depth of answers"],
        ),
        technicalKnowledge=TechnicalKnowledge(
            assessment="Technical knowledge assessment based on interview responses."),
        confidenceLevel=ConfidenceLevel(
            assessment="Confidence level assessed based on communication throughout the interview."),
        jobSuitability=JobSuitability(
            assessment="Job suitability based on overall interview performance."),
        hiringLikelihood=HiringLikelihood(
            assessment="Based on interview performance. Continue practicing to improve.",
            recommendation="Keep practicing and refining your answers."),
        conversationAnalysis=ConversationAnalysis(
            coherence="Interview completed successfully.",
            consistency="Responses provided throughout the conversation.",
            depth="Continue to provide more detailed examples in future interviews.",
            narrative="Your interview story is developing.",
        ),
        improvements=[Improvement(
            category="General",
            suggestion="Practice providing more detailed examples using the STAR method.",
            priority="High",
        )],
        considerations=["Continue practicing to improve interview skills"],
    )


def parse_report(raw_response: str) -> InterviewReport:
    """
    Parse the provider's report text.

    Embedded JSON is extracted from surrounding prose. Text with no usable
    JSON object yields the default report carrying the first 200 characters.
    """
    try:
        data = extract_json_object(raw_response)
    except ValueError:
        logger.warning("Report response had no JSON, using default structure")
        return default_report(raw_response.strip())

    try:
        return InterviewReport.model_validate(data)
    except ValidationError as e:
        logger.warning("Report JSON did not match schema: %s", e)
        return default_report(raw_response.strip())


def parse_answer_validation(raw_response: str) -> AnswerValidation:
    """
    Raises:
        ValueError: Response has no usable JSON
    """
    data = extract_json_object(raw_response)
    try:
        return AnswerValidation.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid validation structure: {e}")
