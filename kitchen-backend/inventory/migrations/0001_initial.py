from django.conf import settings
from django.db import migrations, models
from django.db.models import Q
import django.core.validators
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Unit',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('code', models.CharField(max_length=16)),
                ('name', models.CharField(max_length=80)),
                ('precision', models.PositiveSmallIntegerField(default=0, help_text='Decimal places to display/accept for quantities in this unit', validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(6)])),
                ('is_active', models.BooleanField(default=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='units', to='tenants.tenant')),
            ],
            options={
                'ordering': ['code'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'code'), name='uniq_unit_code_per_tenant'),
                    models.CheckConstraint(condition=Q(precision__lte=6), name='unit_precision_max_6'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Ingredient',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('sku', models.CharField(max_length=64)),
                ('name', models.CharField(max_length=200)),
                ('category', models.CharField(choices=[('dry', 'Dry goods'), ('produce', 'Produce'), ('meat', 'Meat'), ('dairy', 'Dairy'), ('bar', 'Bar'), ('seafood', 'Seafood'), ('grocery', 'Grocery')], default='dry', max_length=16)),
                ('par_level', models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ('current_qty', models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ('is_active', models.BooleanField(default=True)),
                ('base_unit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ingredients', to='inventory.unit')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ingredients', to='tenants.tenant')),
            ],
            options={
                'ordering': ['name'],
                'indexes': [models.Index(fields=['tenant', 'category'], name='inventory_ingr_tenant_cat_idx')],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'sku'), name='uniq_ingredient_sku_per_tenant'),
                    models.CheckConstraint(condition=Q(current_qty__gte=0), name='ingredient_current_qty_non_negative'),
                    models.CheckConstraint(condition=Q(par_level__gte=0), name='ingredient_par_level_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Movement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('purchase', 'Purchase'), ('adjustment', 'Adjustment'), ('usage', 'Usage')], max_length=16)),
                ('delta', models.DecimalField(decimal_places=3, max_digits=12)),
                ('balance_after', models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True)),
                ('reason', models.CharField(blank=True, max_length=255)),
                ('import_key', models.CharField(blank=True, default='', help_text='Dedup key for invoice imports (empty when the import had no invoice reference)', max_length=64)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ('ingredient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.ingredient')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='tenants.tenant')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [models.Index(fields=['tenant', 'ingredient', 'created_at'], name='inventory_mov_tenant_ingr_idx')],
                'constraints': [
                    models.UniqueConstraint(condition=Q(import_key__gt=''), fields=('tenant', 'import_key'), name='uniq_movement_import_key_per_tenant'),
                ],
            },
        ),
    ]
