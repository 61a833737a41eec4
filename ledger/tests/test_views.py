from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import User
from documents.services import SessionService
from ledger.models import Task
from ledger.services import TaskService


class TaskViewSetTests(APITestCase):
    def setUp(self) -> None:
        self.owner = User.objects.create_user(username="owner", password="pw")
        self.other = User.objects.create_user(username="other", password="pw")
        self.session = SessionService.create(self.owner)
        self.task = TaskService().create(Task.Kind.ANALYSIS, self.owner, self.session)
        self.client.force_authenticate(self.owner)

    def test_list_is_filtered_by_session(self) -> None:
        other_session = SessionService.create(self.owner)
        TaskService().create(Task.Kind.ANALYSIS, self.owner, other_session)

        response = self.client.get("/api/tasks/", {"session": self.session.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [row["id"] for row in response.data]
        self.assertEqual(ids, [self.task.id])

    def test_foreign_task_is_not_found(self) -> None:
        self.client.force_authenticate(self.other)
        response = self.client.get(f"/api/tasks/{self.task.id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requires_authentication(self) -> None:
        self.client.force_authenticate(None)
        response = self.client.get("/api/tasks/")
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_history_lists_newest_first_across_sessions(self) -> None:
        other_session = SessionService.create(self.owner)
        newer = TaskService().create(Task.Kind.JOB_MATCH, self.owner, other_session)
        TaskService().create(Task.Kind.ANALYSIS, self.other, SessionService.create(self.other))

        response = self.client.get("/api/tasks/history/", {"limit": 1})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data], [newer.id])

        response = self.client.get("/api/tasks/history/")
        self.assertEqual({row["id"] for row in response.data}, {self.task.id, newer.id})

    def test_history_rejects_bad_limit(self) -> None:
        response = self.client.get("/api/tasks/history/", {"limit": "lots"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_latest_for_session_and_kind(self) -> None:
        letter = TaskService().create(Task.Kind.LETTER_GENERATION, self.owner, self.session)

        response = self.client.get("/api/tasks/latest/", {"session": self.session.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["id"], letter.id)

        response = self.client.get("/api/tasks/latest/", {"session": self.session.id, "kind": "analysis"})
        self.assertEqual(response.data["id"], self.task.id)

    def test_latest_is_not_found_for_foreign_or_empty_session(self) -> None:
        self.client.force_authenticate(self.other)
        response = self.client.get("/api/tasks/latest/", {"session": self.session.id})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_latest_requires_session(self) -> None:
        response = self.client.get("/api/tasks/latest/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
