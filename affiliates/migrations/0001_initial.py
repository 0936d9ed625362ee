import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('funnels', '0001_initial'),
        ('payments', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='FunnelAffiliate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('ref_code', models.CharField(blank=True, help_text='Code carried in referral links (?ref=CODE).', max_length=20, unique=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('suspended', 'Suspended')], default='active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='CommissionRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('commission_type', models.CharField(choices=[('fixed', 'Fixed Amount'), ('percentage', 'Percentage of Price')], default='percentage', max_length=20)),
                ('commission_value', models.DecimalField(decimal_places=2, help_text='e.g., 10.00 for a fixed amount, or 15 for 15%', max_digits=10)),
                ('funnel', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='commission_rules', to='funnels.funnel')),
                ('funnel_product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='commission_rules', to='funnels.funnelstepproduct')),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('funnel', 'funnel_product'), name='unique_commission_rule_per_product'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Commission',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('commission_type', models.CharField(choices=[('fixed', 'Fixed Amount'), ('percentage', 'Percentage of Price')], max_length=20)),
                ('commission_rate', models.DecimalField(decimal_places=2, max_digits=10)),
                ('order_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('commission_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('breakdown', models.JSONField(blank=True, default=list, help_text='Every product rule that contributed to this commission.')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('paid', 'Paid'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('affiliate', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='commissions', to='affiliates.funnelaffiliate')),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reviewed_commissions', to=settings.AUTH_USER_MODEL)),
                ('funnel', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='commissions', to='funnels.funnel')),
                ('funnel_order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='commissions', to='payments.funnelorder')),
                ('order', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='commission', to='payments.order')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
    ]
