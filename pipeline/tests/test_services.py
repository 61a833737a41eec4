from unittest import mock

from django.test import SimpleTestCase, TestCase

from accounts.models import User
from approvals.models import Approval
from caching.models import CacheEntry
from documents.models import Document
from documents.services import DocumentNotFound, SessionNotFound, SessionService
from ledger.models import Task
from pipeline.llm import ModelServiceError
from pipeline.services import (
    PipelineExecutor,
    PipelineValidationError,
    start_pipeline,
)
from pipeline.tests.fakes import (
    ANALYSIS_JSON,
    CV_TEXT,
    FENCED_IMPROVEMENTS,
    IMPROVEMENTS_JSON,
    JOB_MATCH_JSON,
    JOB_TEXT,
    LETTER_TEXT,
    QUESTIONS_JSON,
    TRUNCATED_JSON,
    ScriptedModelClient,
)


class NormalizeOptionsTests(SimpleTestCase):
    """Option sanitising, no database access."""

    def test_defaults(self) -> None:
        options = PipelineExecutor.normalize_options({})
        self.assertEqual(options["difficulty"], "intermediate")
        self.assertEqual(options["question_count"], 10)
        self.assertEqual(options["tone"], "professional")
        self.assertIsNone(options["temperature"])
        self.assertTrue(options["use_cache"])

    def test_custom_values_are_sanitised(self) -> None:
        options = PipelineExecutor.normalize_options({
            "difficulty": "ADVANCED",
            "question_count": "40",
            "temperature": "3.5",
            "use_cache": "false",
            "company_name": "  Globex  ",
            "unexpected": "dropped",
        })
        self.assertEqual(options["difficulty"], "advanced")
        self.assertEqual(options["question_count"], 25)
        self.assertEqual(options["temperature"], 2.0)
        self.assertFalse(options["use_cache"])
        self.assertEqual(options["company_name"], "Globex")
        self.assertNotIn("unexpected", options)

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        options = PipelineExecutor.normalize_options({
            "difficulty": "expert",
            "question_count": "many",
            "temperature": "warm",
            "tone": "   ",
        })
        self.assertEqual(options["difficulty"], "intermediate")
        self.assertEqual(options["question_count"], 10)
        self.assertIsNone(options["temperature"])
        self.assertEqual(options["tone"], "professional")


class PipelineTestCase(TestCase):
    def setUp(self) -> None:
        self.owner = User.objects.create_user(username="jane", password="pw")
        self.other = User.objects.create_user(username="mallory", password="pw")
        self.session = SessionService.create(self.owner, current_stage="upload")

    def run_pipeline(self, kind, responses, source_text=CV_TEXT, source_text_2=None, **kwargs):
        client = ScriptedModelClient(responses)
        executor = PipelineExecutor(client)
        task = start_pipeline(
            kind,
            self.owner,
            self.session.id,
            source_text,
            source_text_2,
            executor=executor,
            **kwargs,
        )
        return task, client


class AnalysisPipelineTests(PipelineTestCase):
    def test_successful_run_completes_task_and_creates_approvals(self) -> None:
        task, client = self.run_pipeline(Task.Kind.ANALYSIS, [ANALYSIS_JSON, FENCED_IMPROVEMENTS])

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertIsNotNone(task.completed_at)
        self.assertEqual(len(client.prompts), 2)

        result = task.result
        self.assertEqual(result["kind"], "analysis")
        self.assertEqual(result["result"]["overall_score"], 68)
        self.assertFalse(result["degraded"])
        self.assertEqual(len(result["suggestions"]), 2)
        self.assertEqual(result["token_usage"]["total_tokens"], 30)
        self.assertEqual(result["parsed"]["sections_detected"], ["email", "phone", "experience", "education", "skills"])
        self.assertNotIn("full_text", result["parsed"])

        self.assertIn("payments team", task.metadata["source_text"])
        self.assertIn("Stage analyze_structure started.", task.metadata["debug_log"])

        approvals = list(Approval.objects.filter(session=self.session).order_by("id"))
        self.assertEqual(len(approvals), 2)
        self.assertTrue(all(a.status == Approval.Status.PENDING for a in approvals))
        self.assertTrue(all(a.task_id == task.id for a in approvals))
        self.assertEqual(approvals[1].change_type, Approval.ChangeType.ADD)

        self.session.refresh_from_db()
        self.assertEqual(self.session.current_stage, "awaiting_approval")

        self.owner.refresh_from_db()
        self.assertEqual(self.owner.tokens_used, 30)
        self.assertGreater(self.owner.words_used, 0)

    def test_improvements_prompt_carries_the_analysis(self) -> None:
        _, client = self.run_pipeline(Task.Kind.ANALYSIS, [ANALYSIS_JSON, IMPROVEMENTS_JSON])
        self.assertIn("Vague experience bullets", client.prompts[1])

    def test_malformed_output_completes_with_fallback(self) -> None:
        task, _ = self.run_pipeline(Task.Kind.ANALYSIS, [TRUNCATED_JSON, IMPROVEMENTS_JSON])

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertTrue(task.result["degraded"])
        self.assertEqual(task.result["degraded_stages"], ["analyze_structure"])
        self.assertTrue(task.result["result"]["degraded"])
        self.assertEqual(task.result["result"]["confidence"], "low")
        self.assertEqual(len(task.result["suggestions"]), 2)

    def test_all_outputs_malformed_yields_fallback_suggestion(self) -> None:
        task, _ = self.run_pipeline(Task.Kind.ANALYSIS, ["not json at all", "still not json"])

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertEqual(task.result["degraded_stages"], ["analyze_structure", "identify_improvements"])
        [approval] = Approval.objects.filter(session=self.session)
        self.assertEqual(approval.proposed_content["title"], "Review and enhance")

    def test_model_failure_marks_task_failed(self) -> None:
        task, _ = self.run_pipeline(
            Task.Kind.ANALYSIS,
            [ANALYSIS_JSON, ModelServiceError("Model request failed: 503")],
        )

        self.assertEqual(task.status, Task.Status.FAILED)
        self.assertEqual(task.error_message, "Model request failed: 503")
        self.assertIsNone(task.result)
        self.assertIsNotNone(task.completed_at)
        self.assertFalse(Approval.objects.exists())
        self.assertIn("Stage identify_improvements failed", task.metadata["debug_log"])

    def test_unexpected_error_in_stage_marks_task_failed(self) -> None:
        def explode(_prompt):
            raise RuntimeError("boom")

        task, _ = self.run_pipeline(Task.Kind.ANALYSIS, [explode])

        self.assertEqual(task.status, Task.Status.FAILED)
        self.assertIn("Unexpected error in analyze_structure", task.error_message)

    def test_validated_results_are_cached_per_user(self) -> None:
        self.run_pipeline(Task.Kind.ANALYSIS, [ANALYSIS_JSON, IMPROVEMENTS_JSON])
        task, client = self.run_pipeline(Task.Kind.ANALYSIS, [])

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertEqual(client.prompts, [])
        self.assertEqual(task.result["result"]["overall_score"], 68)
        self.assertTrue(all(key.startswith(f"user:{self.owner.id}:analysis:") for key in
                            CacheEntry.objects.values_list("key", flat=True)))

        other_session = SessionService.create(self.other)
        other_client = ScriptedModelClient([ANALYSIS_JSON, IMPROVEMENTS_JSON])
        start_pipeline(
            Task.Kind.ANALYSIS, self.other, other_session.id, CV_TEXT,
            executor=PipelineExecutor(other_client),
        )
        self.assertEqual(len(other_client.prompts), 2)

    def test_degraded_results_are_not_cached(self) -> None:
        self.run_pipeline(Task.Kind.ANALYSIS, [TRUNCATED_JSON, IMPROVEMENTS_JSON])
        task, client = self.run_pipeline(Task.Kind.ANALYSIS, [ANALYSIS_JSON, IMPROVEMENTS_JSON])

        self.assertEqual(len(client.prompts), 2)
        self.assertFalse(task.result["degraded"])

    def test_cache_can_be_bypassed(self) -> None:
        self.run_pipeline(
            Task.Kind.ANALYSIS, [ANALYSIS_JSON, IMPROVEMENTS_JSON], options={"use_cache": False}
        )
        self.assertFalse(CacheEntry.objects.exists())

    def test_text_is_loaded_from_document(self) -> None:
        document = Document.objects.create(
            user=self.owner,
            kind=Document.Kind.CV,
            original_filename="cv.pdf",
            parsed_text=CV_TEXT,
            page_count=1,
        )
        task, client = self.run_pipeline(
            Task.Kind.ANALYSIS, [ANALYSIS_JSON, IMPROVEMENTS_JSON], source_text="", document_id=document.id
        )

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertEqual(task.result["parsed"]["page_count"], 1)
        self.assertIn("Acme Corp", client.prompts[0])
        self.assertTrue(all(a.document_id == document.id for a in Approval.objects.all()))

    def test_document_missing_at_parse_time_fails_the_task(self) -> None:
        task = Task.objects.create(session=self.session, user=self.owner, kind=Task.Kind.ANALYSIS)
        outcome = PipelineExecutor(ScriptedModelClient()).run(task, document_id=424242)

        self.assertEqual(outcome.status, Task.Status.FAILED)
        task.refresh_from_db()
        self.assertEqual(task.error_message, "Document not found")


class OtherKindsPipelineTests(PipelineTestCase):
    def test_job_match(self) -> None:
        task, client = self.run_pipeline(
            Task.Kind.JOB_MATCH, [JOB_MATCH_JSON, IMPROVEMENTS_JSON], source_text_2=JOB_TEXT
        )

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertEqual(task.result["result"]["type"], "job_match")
        self.assertEqual(task.result["result"]["missing_keywords"], ["Kubernetes"])
        self.assertIn("Kubernetes", client.prompts[1])
        self.assertEqual(Approval.objects.filter(task=task).count(), 2)

    def test_question_generation(self) -> None:
        task, client = self.run_pipeline(
            Task.Kind.QUESTION_GENERATION,
            [QUESTIONS_JSON],
            source_text_2=JOB_TEXT,
            options={"difficulty": "advanced", "question_count": 5},
        )

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertEqual(task.result["result"]["type"], "question_set")
        self.assertEqual(len(task.result["result"]["questions"]), 1)
        self.assertEqual(task.result["suggestions"], [])
        self.assertIn("Write 5 questions at advanced difficulty", client.prompts[0])
        self.assertFalse(Approval.objects.exists())

    def test_letter_generation(self) -> None:
        task, client = self.run_pipeline(
            Task.Kind.LETTER_GENERATION,
            [LETTER_TEXT],
            source_text_2=JOB_TEXT,
            options={"company_name": "Globex", "position_title": "Senior Backend Engineer"},
        )

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertEqual(task.result["result"]["type"], "letter_text")
        self.assertTrue(task.result["result"]["content"].startswith("Dear Hiring Manager"))
        self.assertIn("Company: Globex", client.prompts[0])

    def test_letter_fallback_on_empty_output(self) -> None:
        task, _ = self.run_pipeline(
            Task.Kind.LETTER_GENERATION, [""], source_text_2=JOB_TEXT, options={"company_name": "Globex"}
        )

        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertTrue(task.result["degraded"])
        self.assertIn("Globex", task.result["result"]["content"])


class StartPipelineValidationTests(PipelineTestCase):
    def assertNoTasks(self) -> None:
        self.assertFalse(Task.objects.exists())

    def test_unknown_kind(self) -> None:
        with self.assertRaises(PipelineValidationError):
            self.run_pipeline("summarise", [])
        self.assertNoTasks()

    def test_artifact_generation_is_not_a_pipeline(self) -> None:
        with self.assertRaises(PipelineValidationError):
            self.run_pipeline(Task.Kind.ARTIFACT_GENERATION, [])
        self.assertNoTasks()

    def test_missing_source_text(self) -> None:
        with self.assertRaises(PipelineValidationError):
            self.run_pipeline(Task.Kind.ANALYSIS, [], source_text="   ")
        self.assertNoTasks()

    def test_missing_job_description(self) -> None:
        with self.assertRaises(PipelineValidationError):
            self.run_pipeline(Task.Kind.JOB_MATCH, [])
        self.assertNoTasks()

    def test_foreign_session(self) -> None:
        foreign = SessionService.create(self.other)
        with self.assertRaises(SessionNotFound):
            start_pipeline(
                Task.Kind.ANALYSIS, self.owner, foreign.id, CV_TEXT,
                executor=PipelineExecutor(ScriptedModelClient()),
            )
        self.assertNoTasks()

    def test_foreign_document(self) -> None:
        document = Document.objects.create(
            user=self.other, kind=Document.Kind.CV, original_filename="cv.pdf", parsed_text=CV_TEXT
        )
        with self.assertRaises(DocumentNotFound):
            self.run_pipeline(Task.Kind.ANALYSIS, [], source_text="", document_id=document.id)
        self.assertNoTasks()

    @mock.patch("pipeline.services.ModelClient")
    def test_default_executor_builds_a_model_client(self, client_cls) -> None:
        client_cls.return_value = ScriptedModelClient([ANALYSIS_JSON, IMPROVEMENTS_JSON])
        task = start_pipeline(Task.Kind.ANALYSIS, self.owner, self.session.id, CV_TEXT)

        self.assertEqual(task.status, Task.Status.COMPLETED)
        client_cls.assert_called_once_with()


class WrongTypedOutputPipelineTests(PipelineTestCase):
    """Parseable output with the wrong types degrades instead of failing the run."""

    def test_non_finite_score_falls_back(self) -> None:
        for raw in ('{"overall_score": NaN}', '{"overallScore": "Infinity"}'):
            with self.subTest(raw=raw):
                task, _ = self.run_pipeline(
                    Task.Kind.ANALYSIS, [raw, IMPROVEMENTS_JSON], options={"use_cache": False}
                )
                self.assertEqual(task.status, Task.Status.COMPLETED)
                self.assertEqual(task.result["degraded_stages"], ["analyze_structure"])
                self.assertIsNone(task.result["result"]["overall_score"])

    def test_scalar_recommendations_do_not_fail_job_match(self) -> None:
        task, _ = self.run_pipeline(
            Task.Kind.JOB_MATCH,
            ['{"match_score": 50, "recommendations": 5}', IMPROVEMENTS_JSON],
            source_text_2=JOB_TEXT,
        )
        self.assertEqual(task.status, Task.Status.COMPLETED)
        self.assertFalse(task.result["degraded"])
        self.assertEqual(task.result["result"]["recommendations"], [])

    def test_wrong_types_in_every_kind_complete_degraded(self) -> None:
        cases = [
            (Task.Kind.ANALYSIS, ['{"overall_score": [70]}', '{"improvements": {"title": "x"}}'], None),
            (Task.Kind.JOB_MATCH, ['{"match_score": NaN}', '{"improvements": 5}'], JOB_TEXT),
            (Task.Kind.QUESTION_GENERATION, ['{"questions": "Tell me about yourself"}'], JOB_TEXT),
            (Task.Kind.LETTER_GENERATION, ['{"cover_letter": 42}'], JOB_TEXT),
        ]
        for kind, responses, job_text in cases:
            with self.subTest(kind=kind):
                task, _ = self.run_pipeline(
                    kind, responses, source_text_2=job_text, options={"use_cache": False}
                )
                self.assertEqual(task.status, Task.Status.COMPLETED)
                self.assertTrue(task.result["degraded"])
                self.assertEqual(len(task.result["degraded_stages"]), len(responses))
