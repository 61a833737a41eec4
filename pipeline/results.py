"""
Typed results for the model-backed stages.

Each result type validates an untrusted JSON payload in ``from_payload`` and
raises ``MalformedOutput`` when the payload does not fit. ``fallback()``
builds the deterministic stand-in used when a stage's output cannot be
trusted; it is always marked ``degraded`` and labeled low confidence.
Serialised results carry a ``type`` tag so stored task results stay
self-describing.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

from .llm import MalformedOutput, extract_json_object, strip_code_fences

FALLBACK_NOTE = "Automatic analysis was incomplete; this is a low-confidence placeholder."


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins; accepts both snake_case and camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
        elif isinstance(item, bool):
            continue
        elif isinstance(item, int) or (isinstance(item, float) and math.isfinite(item)):
            items.append(str(item))
    return items


def _score(value: Any, field_name: str, upper: int = 100) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedOutput(f"{field_name} must be a number")
    try:
        number = float(value)
    except (ValueError, OverflowError) as exc:
        raise MalformedOutput(f"{field_name} must be a number") from exc
    if not math.isfinite(number):
        raise MalformedOutput(f"{field_name} must be a finite number")
    return int(max(0, min(upper, round(number))))


def _json_safe(value: Any) -> Any:
    """Free-form model JSON with non-finite numbers replaced by None."""
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


class StageResult:
    """
    Common behaviour of every result type.
    """

    kind: ClassVar[str] = ""
    degraded: bool

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]):
        raise NotImplementedError

    @classmethod
    def from_text(cls, raw_text: str):
        return cls.validate(extract_json_object(raw_text))

    @classmethod
    def validate(cls, payload: Dict[str, Any]):
        """
        ``from_payload`` with every shape error reported as ``MalformedOutput``.
        """
        try:
            return cls.from_payload(payload)
        except MalformedOutput:
            raise
        except (TypeError, ValueError, AttributeError, KeyError, OverflowError) as exc:
            raise MalformedOutput(f"{cls.kind} payload has an unexpected shape: {exc}") from exc

    @classmethod
    def fallback(cls, **context: Any):
        raise NotImplementedError

    def body(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.kind, "degraded": self.degraded}
        data.update(self.body())
        if self.degraded:
            data["confidence"] = "low"
            data["note"] = FALLBACK_NOTE
        return data


@dataclass
class AnalysisResult(StageResult):
    kind: ClassVar[str] = "analysis"

    overall_score: Optional[int]
    sections: Dict[str, Any] = field(default_factory=dict)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    degraded: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AnalysisResult":
        score = _pick(payload, "overall_score", "overallScore")
        if score is None:
            raise MalformedOutput("analysis is missing overall_score")
        sections = _pick(payload, "sections", default={})
        return cls(
            overall_score=_score(score, "overall_score"),
            sections=_json_safe(sections) if isinstance(sections, dict) else {},
            strengths=_str_list(payload.get("strengths")),
            weaknesses=_str_list(payload.get("weaknesses")),
            recommendations=_str_list(payload.get("recommendations")),
        )

    @classmethod
    def fallback(cls, **context: Any) -> "AnalysisResult":
        return cls(
            overall_score=None,
            sections={},
            strengths=[],
            weaknesses=["Detailed analysis unavailable"],
            recommendations=["Review the CV structure manually"],
            degraded=True,
        )

    def body(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "sections": self.sections,
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "recommendations": self.recommendations,
        }


@dataclass
class Suggestion:
    """
    One proposed change to the CV; becomes one approval row.
    """

    id: str
    type: str
    section: str
    priority: str
    title: str
    description: str
    original_content: str = ""
    suggested_content: str = ""
    reasoning: str = ""

    CHANGE_TYPES: ClassVar[tuple] = ("add", "edit", "remove", "reorder")
    PRIORITIES: ClassVar[tuple] = ("critical", "high", "medium", "low")

    @classmethod
    def from_item(cls, item: Any, index: int) -> Optional["Suggestion"]:
        if not isinstance(item, dict):
            return None
        title = _text(item.get("title"))
        description = _text(item.get("description"))
        if not title and not description:
            return None

        change_type = _text(item.get("type")).lower()
        if change_type == "delete":
            change_type = "remove"
        if change_type not in cls.CHANGE_TYPES:
            change_type = "edit"
        priority = _text(item.get("priority")).lower()
        if priority not in cls.PRIORITIES:
            priority = "medium"

        return cls(
            id=_text(item.get("id")) or f"suggestion-{index + 1}",
            type=change_type,
            section=_text(item.get("section")).lower() or "other",
            priority=priority,
            title=title or description[:80],
            description=description or title,
            original_content=_text(_pick(item, "original_content", "originalContent")),
            suggested_content=_text(_pick(item, "suggested_content", "suggestedContent", "proposedContent")),
            reasoning=_text(item.get("reasoning")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "section": self.section,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "original_content": self.original_content,
            "suggested_content": self.suggested_content,
            "reasoning": self.reasoning,
        }


@dataclass
class ImprovementList(StageResult):
    kind: ClassVar[str] = "improvements"

    suggestions: List[Suggestion]
    degraded: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ImprovementList":
        items = _pick(payload, "improvements", "suggestions")
        if not isinstance(items, list):
            raise MalformedOutput("improvements must be a list")
        suggestions = [
            suggestion
            for suggestion in (Suggestion.from_item(item, i) for i, item in enumerate(items))
            if suggestion is not None
        ]
        if not suggestions:
            raise MalformedOutput("no usable improvements in model output")
        return cls(suggestions=suggestions)

    @classmethod
    def fallback(cls, **context: Any) -> "ImprovementList":
        return cls(
            suggestions=[
                Suggestion(
                    id="fallback-1",
                    type="edit",
                    section="general",
                    priority="low",
                    title="Review and enhance",
                    description="Manual review recommended",
                    reasoning="Automatic analysis incomplete",
                )
            ],
            degraded=True,
        )

    def body(self) -> Dict[str, Any]:
        return {"suggestions": [suggestion.to_dict() for suggestion in self.suggestions]}


@dataclass
class JobMatchResult(StageResult):
    kind: ClassVar[str] = "job_match"

    match_score: Optional[int]
    matched_keywords: List[str] = field(default_factory=list)
    missing_keywords: List[str] = field(default_factory=list)
    required_skills_missing: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    gaps: List[str] = field(default_factory=list)
    recommendations: List[Dict[str, str]] = field(default_factory=list)
    degraded: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "JobMatchResult":
        score = _pick(payload, "match_score", "matchScore")
        if score is None:
            raise MalformedOutput("job match is missing match_score")

        keywords = payload.get("keywordMatches") if isinstance(payload.get("keywordMatches"), dict) else {}
        skills = payload.get("skillsAnalysis") if isinstance(payload.get("skillsAnalysis"), dict) else {}
        alignment = payload.get("experienceAlignment") if isinstance(payload.get("experienceAlignment"), dict) else {}

        raw_recommendations = payload.get("recommendations")
        if not isinstance(raw_recommendations, list):
            raw_recommendations = []

        recommendations = []
        for item in raw_recommendations:
            if isinstance(item, str) and item.strip():
                recommendations.append({"priority": "medium", "suggestion": item.strip(), "section": ""})
            elif isinstance(item, dict) and _text(item.get("suggestion")):
                recommendations.append({
                    "priority": _text(item.get("priority")).lower() or "medium",
                    "suggestion": _text(item.get("suggestion")),
                    "section": _text(item.get("section")),
                })

        return cls(
            match_score=_score(score, "match_score"),
            matched_keywords=_str_list(_pick(payload, "matched_keywords", default=keywords.get("matched"))),
            missing_keywords=_str_list(_pick(payload, "missing_keywords", default=keywords.get("missing"))),
            required_skills_missing=_str_list(
                _pick(payload, "required_skills_missing", default=skills.get("requiredSkillsMissing"))
            ),
            strengths=_str_list(_pick(payload, "strengths", default=alignment.get("strengths"))),
            gaps=_str_list(_pick(payload, "gaps", default=alignment.get("gaps"))),
            recommendations=recommendations,
        )

    @classmethod
    def fallback(cls, **context: Any) -> "JobMatchResult":
        return cls(
            match_score=None,
            gaps=["Detailed job comparison unavailable"],
            recommendations=[{
                "priority": "low",
                "suggestion": "Compare the CV against the job requirements manually",
                "section": "general",
            }],
            degraded=True,
        )

    def body(self) -> Dict[str, Any]:
        return {
            "match_score": self.match_score,
            "matched_keywords": self.matched_keywords,
            "missing_keywords": self.missing_keywords,
            "required_skills_missing": self.required_skills_missing,
            "strengths": self.strengths,
            "gaps": self.gaps,
            "recommendations": self.recommendations,
        }


@dataclass
class Question:
    id: str
    type: str
    category: str
    difficulty: str
    question: str
    expected_answer: str = ""
    evaluation_criteria: List[str] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "category": self.category,
            "difficulty": self.difficulty,
            "question": self.question,
            "expected_answer": self.expected_answer,
            "evaluation_criteria": self.evaluation_criteria,
            "reasoning": self.reasoning,
        }


@dataclass
class QuestionSet(StageResult):
    kind: ClassVar[str] = "question_set"

    questions: List[Question]
    interview_structure: Dict[str, Any] = field(default_factory=dict)
    degraded: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "QuestionSet":
        items = payload.get("questions")
        if not isinstance(items, list):
            raise MalformedOutput("questions must be a list")

        questions = []
        for index, item in enumerate(items):
            if not isinstance(item, dict) or not _text(item.get("question")):
                continue
            questions.append(Question(
                id=_text(item.get("id")) or f"question-{index + 1}",
                type=_text(item.get("type")).lower() or "behavioral",
                category=_text(item.get("category")).lower() or "experience",
                difficulty=_text(item.get("difficulty")).lower() or "intermediate",
                question=_text(item.get("question")),
                expected_answer=_text(_pick(item, "expected_answer", "expectedAnswer")),
                evaluation_criteria=_str_list(_pick(item, "evaluation_criteria", "evaluationCriteria")),
                reasoning=_text(item.get("reasoning")),
            ))
        if not questions:
            raise MalformedOutput("no usable questions in model output")

        structure = _pick(payload, "interview_structure", "interviewStructure", default={})
        return cls(questions=questions, interview_structure=_json_safe(structure) if isinstance(structure, dict) else {})

    @classmethod
    def fallback(cls, **context: Any) -> "QuestionSet":
        return cls(
            questions=[
                Question(
                    id="fallback-1",
                    type="behavioral",
                    category="experience",
                    difficulty=context.get("difficulty") or "intermediate",
                    question="Tell me about your most challenging project and how you handled it.",
                    expected_answer="Should include situation, task, action, and result (STAR method)",
                    evaluation_criteria=[
                        "Clear problem description",
                        "Specific actions taken",
                        "Measurable results",
                    ],
                    reasoning="Fallback question - automatic generation failed",
                )
            ],
            interview_structure={
                "opening": "Start with introductions and set expectations",
                "focus_areas": ["Technical skills", "Experience"],
                "closing_topics": ["Questions for the interviewer"],
            },
            degraded=True,
        )

    def body(self) -> Dict[str, Any]:
        return {
            "questions": [question.to_dict() for question in self.questions],
            "interview_structure": self.interview_structure,
        }


@dataclass
class LetterText(StageResult):
    kind: ClassVar[str] = "letter_text"

    content: str
    degraded: bool = False

    MIN_LENGTH: ClassVar[int] = 40

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "LetterText":
        content = _text(_pick(payload, "cover_letter", "coverLetter", "content"))
        if len(content) < cls.MIN_LENGTH:
            raise MalformedOutput("cover letter is missing or too short")
        return cls(content=content)

    @classmethod
    def from_text(cls, raw_text: str) -> "LetterText":
        """
        Letters come back as prose; a JSON wrapper is accepted too.
        """
        cleaned = strip_code_fences(raw_text or "")
        if cleaned.startswith("{"):
            return cls.validate(extract_json_object(cleaned))
        if len(cleaned) < cls.MIN_LENGTH:
            raise MalformedOutput("cover letter is missing or too short")
        return cls(content=cleaned)

    @classmethod
    def fallback(cls, **context: Any) -> "LetterText":
        greeting = (
            f"Dear {context['hiring_manager_name']},"
            if context.get("hiring_manager_name") else "Dear Hiring Manager,"
        )
        position = context.get("position_title") or "the advertised position"
        company = context.get("company_name") or "your company"
        content = (
            f"{greeting}\n\n"
            f"I am writing to apply for {position} at {company}. "
            "[Automatic letter generation was unavailable. Replace this "
            "paragraph with two or three achievements from your CV that match "
            "the job requirements.]\n\n"
            "Thank you for your consideration. I would welcome the opportunity "
            "to discuss my application.\n\n"
            "Sincerely,\n"
        )
        return cls(content=content, degraded=True)

    def body(self) -> Dict[str, Any]:
        return {"content": self.content, "word_count": len(self.content.split())}


def _point_list(value: Any, *keys: str) -> List[Dict[str, str]]:
    """List of small dicts; bare strings fill the first key."""
    if not isinstance(value, list):
        return []
    points = []
    for item in value:
        if isinstance(item, str) and item.strip():
            points.append({keys[0]: item.strip(), **{key: "" for key in keys[1:]}})
        elif isinstance(item, dict):
            point = {key: _text(item.get(key)) for key in keys}
            if point[keys[0]]:
                points.append(point)
    return points


@dataclass
class AnswerEvaluation(StageResult):
    kind: ClassVar[str] = "answer_evaluation"

    score: Optional[int]
    strengths: List[Dict[str, str]] = field(default_factory=list)
    weaknesses: List[Dict[str, str]] = field(default_factory=list)
    missing_points: List[str] = field(default_factory=list)
    overall_feedback: str = ""
    improvement_suggestions: List[Dict[str, str]] = field(default_factory=list)
    follow_up_questions: List[str] = field(default_factory=list)
    degraded: bool = False

    MAX_SCORE: ClassVar[int] = 10

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AnswerEvaluation":
        score = payload.get("score")
        if score is None:
            raise MalformedOutput("evaluation is missing score")
        feedback = _text(_pick(payload, "overall_feedback", "overallFeedback"))
        if not feedback:
            raise MalformedOutput("evaluation is missing overall_feedback")
        return cls(
            score=_score(score, "score", upper=cls.MAX_SCORE),
            strengths=_point_list(payload.get("strengths"), "point", "explanation"),
            weaknesses=_point_list(payload.get("weaknesses"), "point", "explanation"),
            missing_points=_str_list(_pick(payload, "missing_points", "missingPoints")),
            overall_feedback=feedback,
            improvement_suggestions=_point_list(
                _pick(payload, "improvement_suggestions", "improvementSuggestions"),
                "suggestion", "area", "example",
            ),
            follow_up_questions=_str_list(_pick(payload, "follow_up_questions", "followUpQuestions")),
        )

    @classmethod
    def fallback(cls, **context: Any) -> "AnswerEvaluation":
        return cls(
            score=None,
            strengths=[{"point": "Answer provided", "explanation": "The candidate attempted an answer"}],
            weaknesses=[{"point": "Evaluation unavailable", "explanation": "Automatic evaluation failed"}],
            overall_feedback="Manual review recommended",
            degraded=True,
        )

    def body(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "max_score": self.MAX_SCORE,
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "missing_points": self.missing_points,
            "overall_feedback": self.overall_feedback,
            "improvement_suggestions": self.improvement_suggestions,
            "follow_up_questions": self.follow_up_questions,
        }
