import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('order_number', models.CharField(max_length=50, unique=True)),
                ('status', models.CharField(choices=[('order_placed', 'Order Placed'), ('confirmed', 'Confirmed'), ('shipped', 'Shipped'), ('delivered', 'Delivered'), ('returned', 'Returned'), ('canceled', 'Canceled')], db_index=True, default='order_placed', max_length=20)),
                ('delivery_type', models.CharField(choices=[('inside', 'Inside city'), ('outside', 'Outside city')], default='inside', max_length=10)),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('shipping_cost', models.DecimalField(decimal_places=2, default=0, help_text='Shipping charged to the customer', max_digits=10)),
                ('actual_shipping_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('total_purchase_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('total_packing_charges', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('cod_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('total_profit', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('returned_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='OrderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_name', models.CharField(max_length=255)),
                ('product_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('quantity', models.PositiveIntegerField()),
                ('item_total', models.DecimalField(decimal_places=2, max_digits=12)),
                ('purchase_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('batch_allocations', models.JSONField(blank=True, null=True)),
                ('is_inventory_reverted', models.BooleanField(default=False)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='orders.order')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='order_items', to='catalog.product')),
                ('variant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='order_items', to='catalog.productvariant')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='OrderPackingDetails',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('boxes_used', models.JSONField(blank=True, default=list)),
                ('materials_used', models.JSONField(blank=True, default=list)),
                ('total_packing_cost', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('is_inventory_deducted', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='packing_details', to='orders.order')),
            ],
            options={
                'verbose_name_plural': 'order packing details',
            },
        ),
    ]
