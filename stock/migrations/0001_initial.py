import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        ('orders', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='InventoryBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('batch_number', models.CharField(max_length=100)),
                ('purchase_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('purchase_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('quantity', models.PositiveIntegerField()),
                ('remaining_quantity', models.PositiveIntegerField()),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('variant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='batches', to='catalog.productvariant')),
            ],
            options={
                'verbose_name_plural': 'inventory batches',
                'ordering': ['purchase_date', 'id'],
                'indexes': [models.Index(fields=['variant', 'purchase_date'], name='inventory_batch_variant_date')],
                'constraints': [models.CheckConstraint(condition=models.Q(('remaining_quantity__lte', models.F('quantity'))), name='inventory_batch_remaining_lte_quantity')],
            },
        ),
        migrations.CreateModel(
            name='BoxInventoryBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('batch_number', models.CharField(max_length=100)),
                ('purchase_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('purchase_price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('quantity', models.PositiveIntegerField()),
                ('remaining_quantity', models.PositiveIntegerField()),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('box_type', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='batches', to='catalog.boxtype')),
            ],
            options={
                'verbose_name_plural': 'box inventory batches',
                'ordering': ['purchase_date', 'id'],
                'constraints': [models.CheckConstraint(condition=models.Q(('remaining_quantity__lte', models.F('quantity'))), name='box_batch_remaining_lte_quantity')],
            },
        ),
        migrations.CreateModel(
            name='PackingMaterialBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('batch_number', models.CharField(max_length=100)),
                ('purchase_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('purchase_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('remaining_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='batches', to='catalog.packingmaterial')),
            ],
            options={
                'verbose_name_plural': 'packing material batches',
                'ordering': ['purchase_date', 'id'],
                'constraints': [models.CheckConstraint(condition=models.Q(('remaining_amount__gte', 0), ('remaining_amount__lte', models.F('purchase_amount'))), name='material_batch_remaining_in_range')],
            },
        ),
        migrations.CreateModel(
            name='BoxTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_type', models.CharField(choices=[('purchase', 'Purchase'), ('order_use', 'Order Use'), ('revert', 'Revert')], max_length=20)),
                ('quantity', models.IntegerField()),
                ('stock_before', models.IntegerField()),
                ('stock_after', models.IntegerField()),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('box_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='catalog.boxtype')),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='box_transactions', to='orders.order')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='PackingMaterialTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_type', models.CharField(choices=[('purchase', 'Purchase'), ('order_use', 'Order Use'), ('revert', 'Revert')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('balance_before', models.DecimalField(decimal_places=2, max_digits=12)),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='catalog.packingmaterial')),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='material_transactions', to='orders.order')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
    ]
