import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('documents', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Task',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('analysis', 'CV Analysis'), ('job_match', 'Job Match'), ('question_generation', 'Interview Questions'), ('letter_generation', 'Cover Letter'), ('artifact_generation', 'Updated CV')], max_length=50)),
                ('status', models.CharField(choices=[('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed')], default='processing', max_length=20)),
                ('result', models.JSONField(blank=True, null=True)),
                ('error_message', models.TextField(blank=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tasks', to='documents.workflowsession')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tasks', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'task',
                'verbose_name': 'Task',
                'verbose_name_plural': 'Tasks',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['session', 'created_at'], name='task_session_idx'),
                    models.Index(fields=['status', 'created_at'], name='task_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('status', 'processing'), ('completed_at__isnull', True)) | models.Q(('status__in', ['completed', 'failed']), ('completed_at__isnull', False)),
                        name='task_completed_at_matches_status',
                    ),
                ],
            },
        ),
    ]
