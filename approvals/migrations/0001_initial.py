import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('documents', '0001_initial'),
        ('ledger', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Approval',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('change_type', models.CharField(choices=[('add', 'Add'), ('edit', 'Edit'), ('remove', 'Remove'), ('reorder', 'Reorder')], default='edit', max_length=20)),
                ('original_content', models.JSONField(blank=True, default=dict)),
                ('proposed_content', models.JSONField(default=dict)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('user_feedback', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('decided_at', models.DateTimeField(blank=True, null=True)),
                ('document', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approvals', to='documents.document')),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='approvals', to='documents.workflowsession')),
                ('task', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approvals', to='ledger.task')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='approvals', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'approval',
                'verbose_name': 'Approval',
                'verbose_name_plural': 'Approvals',
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['session', 'status'], name='approval_session_status_idx')],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('status', 'pending'), ('decided_at__isnull', True)) | models.Q(('status__in', ['approved', 'rejected']), ('decided_at__isnull', False)),
                        name='approval_decided_at_matches_status',
                    ),
                ],
            },
        ),
    ]
