"""
Pipeline app models

InterviewAnswer stores a candidate's answer to a generated interview
question together with its evaluation.
"""
from django.conf import settings
from django.db import models


class InterviewAnswer(models.Model):
    """
    Answer to one question of a completed question-generation task.

    Questions live in the task result and are addressed by their ``id``
    there; answering the same question again replaces the evaluation.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='interview_answers',
    )
    task = models.ForeignKey(
        'ledger.Task',
        on_delete=models.CASCADE,
        related_name='answers',
    )
    question_id = models.CharField(max_length=100)
    question_text = models.TextField()
    answer = models.TextField()
    evaluation = models.JSONField(default=dict)
    degraded = models.BooleanField(default=False)
    answered_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Answer to {self.question_id} (task {self.task_id})"

    @property
    def score(self):
        return (self.evaluation or {}).get('score')

    class Meta:
        db_table = 'interview_answer'
        verbose_name = 'Interview Answer'
        verbose_name_plural = 'Interview Answers'
        ordering = ['answered_at']
        constraints = [
            models.UniqueConstraint(
                fields=['task', 'question_id'],
                name='interview_answer_unique_question',
            ),
        ]
