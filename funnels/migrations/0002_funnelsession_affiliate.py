import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('affiliates', '0001_initial'),
        ('funnels', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='funnelsession',
            name='affiliate',
            field=models.ForeignKey(blank=True, help_text='The affiliate who referred this visitor.', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sessions', to='affiliates.funnelaffiliate'),
        ),
    ]
