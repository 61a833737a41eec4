"""
Prompt builders for the pipeline stages.

Each builder returns a ``Prompt`` (system instructions plus a user message
carrying the inputs as indented JSON). The wording is a collaborator: stages
only rely on the JSON shape requested here.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

JSON_ONLY = "Return ONLY valid JSON, no markdown or additional text."


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str

    @property
    def text(self) -> str:
        return f"{self.system}\n\n{self.user}"


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=True, indent=2)


def analyze_structure(parsed: Dict[str, Any]) -> Prompt:
    system = (
        "You are an expert CV reviewer. Evaluate the structure and completeness "
        "of the CV you are given. Focus on completeness of essential sections, "
        "clarity and organization, quantifiable achievements, and the use of "
        "action verbs. " + JSON_ONLY
    )
    user = (
        "CV content:\n"
        f"{_dump(parsed)}\n\n"
        "Respond with a JSON object of this shape:\n"
        "{\n"
        '  "overall_score": number (0-100),\n'
        '  "sections": {\n'
        '    "<section name>": {"present": boolean, "quality": "excellent" | "good" | "poor" | "missing", "issues": [string]}\n'
        "  },\n"
        '  "strengths": [string],\n'
        '  "weaknesses": [string],\n'
        '  "recommendations": [string]\n'
        "}\n"
        "Cover at least contact_info, summary, experience, education and skills."
    )
    return Prompt(system, user)


def identify_improvements(
    parsed: Dict[str, Any],
    analysis: Dict[str, Any],
    job_text: Optional[str] = None,
) -> Prompt:
    system = (
        "You are a professional CV writer. Turn an analysis into concrete, "
        "reviewable edits. Prefer quantifiable achievements and stronger action "
        "verbs, add missing critical information, and remove weak or redundant "
        "content. Every suggestion must be self-contained so a reviewer can "
        "accept or reject it on its own. " + JSON_ONLY
    )
    payload: Dict[str, Any] = {"cv": parsed, "analysis": analysis}
    if job_text:
        payload["job_description"] = job_text
    user = (
        "Inputs:\n"
        f"{_dump(payload)}\n\n"
        "Respond with a JSON object of this shape:\n"
        "{\n"
        '  "improvements": [\n'
        "    {\n"
        '      "id": "unique-id",\n'
        '      "type": "add" | "edit" | "remove" | "reorder",\n'
        '      "section": "summary" | "experience" | "education" | "skills" | "other",\n'
        '      "priority": "critical" | "high" | "medium" | "low",\n'
        '      "title": "Brief description",\n'
        '      "description": "What to change and where",\n'
        '      "original_content": "Current text, if any",\n'
        '      "suggested_content": "Replacement or new text",\n'
        '      "reasoning": "Why this matters"\n'
        "    }\n"
        "  ]\n"
        "}"
    )
    return Prompt(system, user)


def compare_with_job(cv_text: str, job_text: str) -> Prompt:
    system = (
        "You are a recruitment expert. Compare a CV against a job description "
        "and identify keyword matches, missing skills and experience gaps. "
        + JSON_ONLY
    )
    user = (
        "Inputs:\n"
        f"{_dump({'cv': cv_text, 'job_description': job_text})}\n\n"
        "Respond with a JSON object of this shape:\n"
        "{\n"
        '  "match_score": number (0-100),\n'
        '  "matched_keywords": [string],\n'
        '  "missing_keywords": [string],\n'
        '  "required_skills_missing": [string],\n'
        '  "strengths": [string],\n'
        '  "gaps": [string],\n'
        '  "recommendations": [{"priority": "critical" | "high" | "medium" | "low", "suggestion": string, "section": string}]\n'
        "}"
    )
    return Prompt(system, user)


def generate_questions(
    cv_text: str,
    job_text: str,
    *,
    difficulty: str = "intermediate",
    question_count: int = 10,
) -> Prompt:
    system = (
        "You are an expert interviewer. Write interview questions grounded in the "
        "candidate's CV and the job description. Mix behavioral, technical, "
        "situational and competency questions. For questions about the "
        "candidate's own experience leave expected_answer empty; for "
        "job-requirement questions describe what a strong answer covers. Avoid "
        "discriminatory or inappropriate questions. " + JSON_ONLY
    )
    user = (
        f"Write {question_count} questions at {difficulty} difficulty.\n\n"
        "Inputs:\n"
        f"{_dump({'cv': cv_text, 'job_description': job_text})}\n\n"
        "Respond with a JSON object of this shape:\n"
        "{\n"
        '  "questions": [\n'
        "    {\n"
        '      "id": "unique-id",\n'
        '      "type": "behavioral" | "technical" | "situational" | "competency",\n'
        '      "category": "experience" | "skills" | "culture-fit" | "problem-solving" | "leadership",\n'
        '      "difficulty": "beginner" | "intermediate" | "advanced",\n'
        '      "question": "The interview question",\n'
        '      "expected_answer": "Key points of a strong answer, or empty",\n'
        '      "evaluation_criteria": [string],\n'
        '      "reasoning": "Why this question fits this candidate and role"\n'
        "    }\n"
        "  ],\n"
        '  "interview_structure": {"opening": string, "focus_areas": [string], "closing_topics": [string]}\n'
        "}"
    )
    return Prompt(system, user)


def evaluate_answer(
    question: str,
    expected_answer: str,
    answer: str,
    evaluation_criteria: Iterable[str] = (),
) -> Prompt:
    if (expected_answer or "").strip():
        guidance = (
            "Compare the answer against the expected answer points. Assess "
            "technical accuracy, completeness and depth of understanding."
        )
    else:
        guidance = (
            "This question is about the candidate's own experience, so there is "
            "no reference answer. Judge the quality of the response: clarity, "
            "structure (situation, task, action, result), depth and reflection."
        )
    system = (
        "You are an expert interviewer evaluating a candidate's answer. Be "
        "constructive and specific, and recognise both strengths and areas for "
        "improvement. " + guidance + " " + JSON_ONLY
    )
    user = (
        "Inputs:\n"
        f"{_dump({'question': question, 'expected_answer': expected_answer or '', 'evaluation_criteria': list(evaluation_criteria), 'answer': answer})}\n\n"
        "Respond with a JSON object of this shape:\n"
        "{\n"
        '  "score": number (0-10),\n'
        '  "strengths": [{"point": string, "explanation": string}],\n'
        '  "weaknesses": [{"point": string, "explanation": string}],\n'
        '  "missing_points": [string],\n'
        '  "overall_feedback": string,\n'
        '  "improvement_suggestions": [{"area": string, "suggestion": string, "example": string}],\n'
        '  "follow_up_questions": [string]\n'
        "}"
    )
    return Prompt(system, user)


def generate_letter(
    cv_text: str,
    job_text: str,
    *,
    company_name: str = "",
    position_title: str = "",
    hiring_manager_name: str = "",
    tone: str = "professional",
) -> Prompt:
    greeting = f"Dear {hiring_manager_name}," if hiring_manager_name else "Dear Hiring Manager,"
    system = (
        "You are a career coach who writes concise, specific cover letters. "
        "Highlight the candidate's most relevant experience from the CV, match "
        "the language of the job description, keep it under 400 words in 3-4 "
        "paragraphs, and avoid cliches. Return only the letter text."
    )
    user = (
        f"Position: {position_title or 'the advertised role'}\n"
        f"Company: {company_name or 'the company'}\n"
        f"Tone: {tone}\n"
        f'Start with the greeting "{greeting}" and sign off with "Sincerely,".\n\n'
        f"Job description:\n{job_text}\n\n"
        f"Candidate CV:\n{cv_text}\n"
    )
    return Prompt(system, user)


def summarize_changes(changes: Iterable[Dict[str, Any]]) -> str:
    """
    Numbered list of approved changes as fed to the document rewrite.
    """
    blocks = []
    for index, change in enumerate(changes, start=1):
        lines = [
            f"{index}. [{str(change.get('change_type') or 'edit').upper()}] "
            f"{change.get('section') or 'General'}",
            f"   Title: {change.get('title') or ''}",
            f"   Description: {change.get('description') or ''}",
        ]
        if change.get('original_content'):
            lines.append(f"   Original Content: {change['original_content']}")
        if change.get('suggested_content'):
            lines.append(f"   Proposed Content: {change['suggested_content']}")
        if change.get('feedback'):
            lines.append(f"   Reviewer Note: {change['feedback']}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def updated_document(source_text: str, changes_summary: str) -> Prompt:
    system = (
        "You are an expert CV writer. Rewrite a CV by applying exactly the "
        "approved changes you are given. Keep existing content that the changes "
        "do not mention, keep the overall structure, and do not invent changes "
        "of your own. Return only the complete updated CV in markdown, without "
        "commentary."
    )
    user = (
        "# ORIGINAL CV\n"
        f"{source_text}\n\n"
        "# APPROVED CHANGES\n"
        f"{changes_summary}\n\n"
        "For ADD changes insert the new content in the right section, for EDIT "
        "changes modify the described content, for REMOVE changes delete it, and "
        "for REORDER changes move it as described.\n\n"
        "UPDATED CV:"
    )
    return Prompt(system, user)
