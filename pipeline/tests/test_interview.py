from django.test import TestCase

from accounts.models import User
from documents.services import SessionService
from ledger.models import Task
from pipeline.interview import (
    AnswerEvaluationError,
    AnswerEvaluator,
    AnswerValidationError,
    QuestionNotFound,
)
from pipeline.llm import ModelServiceError
from pipeline.models import InterviewAnswer
from pipeline.services import PipelineExecutor, start_pipeline
from pipeline.tests.fakes import (
    ANALYSIS_JSON,
    CV_TEXT,
    EVALUATION_JSON,
    IMPROVEMENTS_JSON,
    JOB_TEXT,
    QUESTIONS_JSON,
    ScriptedModelClient,
)

ANSWER = "I would attach an idempotency key to every charge and retry with backoff."


class AnswerEvaluatorTests(TestCase):
    def setUp(self) -> None:
        self.owner = User.objects.create_user(username="jane", password="pw")
        self.other = User.objects.create_user(username="mallory", password="pw")
        self.session = SessionService.create(self.owner)
        self.task = start_pipeline(
            Task.Kind.QUESTION_GENERATION,
            self.owner,
            self.session.id,
            CV_TEXT,
            JOB_TEXT,
            executor=PipelineExecutor(ScriptedModelClient([QUESTIONS_JSON])),
        )

    def evaluate(self, responses, question_id="q1", answer=ANSWER, owner=None, task_id=None):
        client = ScriptedModelClient(responses)
        record = AnswerEvaluator(client).evaluate(
            task_id or self.task.id, question_id, answer, owner or self.owner
        )
        return record, client

    def test_answer_is_evaluated_and_stored(self) -> None:
        record, client = self.evaluate([EVALUATION_JSON])

        self.assertEqual(record.question_text, "How would you design idempotent payment retries?")
        self.assertEqual(record.answer, ANSWER)
        self.assertFalse(record.degraded)
        self.assertEqual(record.score, 7)
        self.assertEqual(record.evaluation["missing_points"], ["Dead-letter queue"])
        self.assertIn("Idempotency keys, bounded retries", client.prompts[0])
        self.assertIn(ANSWER, client.prompts[0])

        self.owner.refresh_from_db()
        self.assertGreaterEqual(self.owner.tokens_used, 15)

    def test_malformed_evaluation_uses_fallback(self) -> None:
        record, _ = self.evaluate(['{"score": NaN, "overallFeedback": "ok"}'])

        self.assertTrue(record.degraded)
        self.assertIsNone(record.score)
        self.assertEqual(record.evaluation["confidence"], "low")
        self.assertEqual(record.evaluation["overall_feedback"], "Manual review recommended")

    def test_answering_again_replaces_the_evaluation(self) -> None:
        self.evaluate(["not json"])
        record, _ = self.evaluate([EVALUATION_JSON], answer="Second attempt with a dead-letter queue.")

        self.assertEqual(InterviewAnswer.objects.filter(task=self.task).count(), 1)
        self.assertEqual(record.answer, "Second attempt with a dead-letter queue.")
        self.assertFalse(record.degraded)

    def test_model_failure_raises_and_stores_nothing(self) -> None:
        with self.assertRaises(AnswerEvaluationError):
            self.evaluate([ModelServiceError("Model request failed: 503")])
        self.assertFalse(InterviewAnswer.objects.exists())

    def test_blank_answer_is_rejected(self) -> None:
        with self.assertRaises(AnswerValidationError):
            self.evaluate([EVALUATION_JSON], answer="   ")

    def test_unknown_question_foreign_task_and_wrong_kind(self) -> None:
        with self.assertRaises(QuestionNotFound):
            self.evaluate([EVALUATION_JSON], question_id="q99")
        with self.assertRaises(QuestionNotFound):
            self.evaluate([EVALUATION_JSON], owner=self.other)

        analysis = start_pipeline(
            Task.Kind.ANALYSIS,
            self.owner,
            self.session.id,
            CV_TEXT,
            executor=PipelineExecutor(ScriptedModelClient([ANALYSIS_JSON, IMPROVEMENTS_JSON])),
        )
        with self.assertRaises(QuestionNotFound):
            self.evaluate([EVALUATION_JSON], task_id=analysis.id)
        self.assertFalse(InterviewAnswer.objects.exists())
