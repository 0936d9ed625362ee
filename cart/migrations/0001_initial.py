import decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('funnels', '0001_initial'),
        ('payments', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='FunnelCart',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('phone', models.CharField(blank=True, max_length=50, null=True)),
                ('cart_data', models.JSONField(blank=True, default=dict)),
                ('total_amount', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=10)),
                ('recovery_status', models.CharField(choices=[('pending', 'Pending'), ('sent', 'Reminder Sent'), ('recovered', 'Recovered'), ('expired', 'Expired')], default='pending', max_length=10)),
                ('recovered_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('funnel', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='carts', to='funnels.funnel')),
                ('recovered_order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recovered_carts', to='payments.order')),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='carts', to='funnels.funnelsession')),
                ('step', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='funnels.funnelstep')),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('session', 'funnel'), name='unique_cart_per_session_funnel'),
                ],
            },
        ),
    ]
