"""
Interview answer evaluation

Scores a candidate's answer to one question of a completed
question-generation task. Unusable model output is replaced by a labeled
low-confidence evaluation; only an upstream failure is an error.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import DatabaseError

from ledger.models import Task
from ledger.services import TaskNotFound, TaskService

from . import prompts
from .llm import MalformedOutput, ModelClient, ModelServiceError
from .models import InterviewAnswer
from .results import AnswerEvaluation

logger = logging.getLogger(__name__)

MAX_ANSWER_LENGTH = 10000


class QuestionNotFound(Exception):
    """
    The task is missing, foreign, not a finished question set, or has no such question.
    """


class AnswerValidationError(ValueError):
    """
    The answer is empty or too long.
    """


class AnswerEvaluationError(Exception):
    """
    The model could not be reached.
    """


def find_question(task: Task, question_id: str) -> Optional[Dict[str, Any]]:
    result = (task.result or {}).get('result') or {}
    for question in result.get('questions') or []:
        if isinstance(question, dict) and str(question.get('id')) == str(question_id):
            return question
    return None


class AnswerEvaluator:
    """
    Evaluates and stores answers to generated interview questions.
    """

    def __init__(self, client: Optional[ModelClient] = None, *, tasks: Optional[TaskService] = None):
        self.client = client or ModelClient()
        self.tasks = tasks or TaskService()

    def evaluate(self, task_id, question_id: str, answer: str, owner) -> InterviewAnswer:
        """
        Evaluate ``answer`` and store it on the question.

        Raises:
            AnswerValidationError: Blank or oversized answer.
            QuestionNotFound: No such question for this owner.
            AnswerEvaluationError: The model call failed.
        """
        answer = (answer or '').strip()
        if not answer:
            raise AnswerValidationError("answer must not be empty.")
        if len(answer) > MAX_ANSWER_LENGTH:
            raise AnswerValidationError(f"answer must be at most {MAX_ANSWER_LENGTH} characters.")

        try:
            task = self.tasks.get(task_id, owner)
        except TaskNotFound as exc:
            raise QuestionNotFound(f"Task {task_id} not found.") from exc
        if task.kind != Task.Kind.QUESTION_GENERATION or task.status != Task.Status.COMPLETED:
            raise QuestionNotFound(f"Task {task_id} has no generated questions.")

        question = find_question(task, question_id)
        if question is None:
            raise QuestionNotFound(f"Question {question_id} not found in task {task_id}.")

        prompt = prompts.evaluate_answer(
            question.get('question') or '',
            question.get('expected_answer') or '',
            answer,
            question.get('evaluation_criteria') or [],
        )
        try:
            raw = self.client.complete(prompt.user, system=prompt.system)
        except ModelServiceError as exc:
            logger.warning("Answer evaluation for task %s failed: %s", task.pk, exc)
            raise AnswerEvaluationError(str(exc)) from exc

        try:
            evaluation = AnswerEvaluation.from_text(raw)
        except MalformedOutput as exc:
            logger.warning(
                "Evaluation of question %s in task %s was malformed (%s); using fallback",
                question_id, task.pk, exc,
            )
            evaluation = AnswerEvaluation.fallback()

        record, _ = InterviewAnswer.objects.update_or_create(
            task=task,
            question_id=str(question_id),
            defaults={
                'user_id': task.user_id,
                'question_text': question.get('question') or '',
                'answer': answer,
                'evaluation': evaluation.to_dict(),
                'degraded': evaluation.degraded,
            },
        )

        usage = getattr(self.client, 'last_usage', {}) or {}
        try:
            owner.record_usage(tokens=int(usage.get('total_tokens', 0) or 0), words=len(answer.split()))
        except DatabaseError:
            logger.exception("Failed to record usage for user %s", task.user_id)

        logger.info(
            "Evaluated answer to %s in task %s (score %s)", question_id, task.pk, evaluation.score
        )
        return record
