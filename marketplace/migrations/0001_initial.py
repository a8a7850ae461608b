import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Provider",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("wallet_address", models.CharField(max_length=128, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, null=True)),
                ("website", models.CharField(blank=True, max_length=512, null=True)),
                ("avatar_url", models.CharField(blank=True, max_length=512, null=True)),
                ("email", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("reputation_score", models.FloatField(default=0)),
                ("total_earnings", models.CharField(default="0", max_length=78)),
                ("total_calls", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-reputation_score", "-total_calls", "-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Api",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("category", models.CharField(default="General", max_length=64)),
                ("endpoint", models.URLField(max_length=512)),
                ("public_path", models.CharField(max_length=255, unique=True)),
                ("method", models.CharField(default="GET", max_length=10)),
                ("price_per_call", models.CharField(max_length=78)),
                ("currency", models.CharField(default="ETH", max_length=16)),
                ("documentation", models.JSONField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("total_calls", models.PositiveIntegerField(default=0)),
                ("total_revenue", models.CharField(default="0", max_length=78)),
                ("average_response_time", models.PositiveIntegerField(default=0)),
                ("uptime", models.FloatField(default=100.0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="apis", to="marketplace.provider"
                    ),
                ),
            ],
            options={
                "ordering": ["-total_calls", "-created_at"],
                "indexes": [models.Index(fields=["provider", "is_active"], name="api_provider_active_idx")],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("developer_address", models.CharField(db_index=True, max_length=128)),
                ("transaction_hash", models.CharField(max_length=128, unique=True)),
                ("amount", models.CharField(max_length=78)),
                ("currency", models.CharField(default="ETH", max_length=16)),
                ("number_of_tokens", models.PositiveIntegerField(default=0)),
                ("tokens_issued", models.PositiveIntegerField(default=0)),
                ("is_verified", models.BooleanField(default=False)),
                ("block_number", models.BigIntegerField(blank=True, null=True)),
                ("block_timestamp", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "api",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="marketplace.api",
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="marketplace.provider",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Token",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("developer_address", models.CharField(db_index=True, max_length=128)),
                ("token_hash", models.CharField(max_length=128, unique=True)),
                ("is_used", models.BooleanField(default=False)),
                ("used_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "api",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="tokens", to="marketplace.api"
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="tokens", to="marketplace.payment"
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="tokens", to="marketplace.provider"
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["payment", "is_used"], name="token_payment_unused_idx")],
            },
        ),
        migrations.CreateModel(
            name="Review",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reviewer_address", models.CharField(max_length=128)),
                ("rating", models.PositiveSmallIntegerField()),
                ("comment", models.TextField(blank=True, default="")),
                ("helpful_count", models.PositiveIntegerField(default=0)),
                ("is_verified", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "api",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="reviews", to="marketplace.api"
                    ),
                ),
            ],
            options={
                "ordering": ["-helpful_count", "-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Favorite",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_address", models.CharField(max_length=128)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "api",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="favorites", to="marketplace.api"
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("user_address", "api"), name="unique_favorite_per_user"),
                ],
            },
        ),
        migrations.CreateModel(
            name="UsageLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("developer_address", models.CharField(max_length=128)),
                ("request_headers", models.JSONField(blank=True, default=dict)),
                ("request_params", models.JSONField(blank=True, default=dict)),
                ("request_body", models.TextField(blank=True, null=True)),
                ("response_status", models.PositiveSmallIntegerField(default=0)),
                ("response_time", models.PositiveIntegerField(default=0)),
                ("response_size", models.PositiveIntegerField(default=0)),
                ("success", models.BooleanField(default=False)),
                ("ip_address", models.CharField(default="unknown", max_length=64)),
                ("user_agent", models.CharField(default="unknown", max_length=512)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "api",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="usage_logs", to="marketplace.api"
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="usage_logs",
                        to="marketplace.provider",
                    ),
                ),
                (
                    "token",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="usage_logs",
                        to="marketplace.token",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
