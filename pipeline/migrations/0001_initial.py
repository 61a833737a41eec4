import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('ledger', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='InterviewAnswer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('question_id', models.CharField(max_length=100)),
                ('question_text', models.TextField()),
                ('answer', models.TextField()),
                ('evaluation', models.JSONField(default=dict)),
                ('degraded', models.BooleanField(default=False)),
                ('answered_at', models.DateTimeField(auto_now=True)),
                ('task', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='answers', to='ledger.task')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='interview_answers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Interview Answer',
                'verbose_name_plural': 'Interview Answers',
                'db_table': 'interview_answer',
                'ordering': ['answered_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('task', 'question_id'), name='interview_answer_unique_question'),
                ],
            },
        ),
    ]
