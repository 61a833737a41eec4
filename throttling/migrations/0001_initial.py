import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='RateLimitHit',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('identifier', models.CharField(max_length=255)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'verbose_name': 'Rate Limit Hit',
                'verbose_name_plural': 'Rate Limit Hits',
                'db_table': 'rate_limit_hit',
                'indexes': [models.Index(fields=['identifier', 'created_at'], name='rate_limit_lookup_idx')],
            },
        ),
    ]
