import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("promotions", "0001_initial"),
    ]

    operations = [
        migrations.RemoveConstraint(
            model_name="discountcode",
            name="discount_code_valid_window",
        ),
        migrations.AddConstraint(
            model_name="discountcode",
            constraint=models.CheckConstraint(
                condition=models.Q(("valid_from__isnull", True))
                | models.Q(("valid_until__isnull", True))
                | models.Q(("valid_until__gt", models.F("valid_from"))),
                name="discount_code_valid_window",
            ),
        ),
        migrations.AddConstraint(
            model_name="reward",
            constraint=models.CheckConstraint(
                condition=models.Q(("valid_from__isnull", True))
                | models.Q(("valid_until__isnull", True))
                | models.Q(("valid_until__gt", models.F("valid_from"))),
                name="reward_valid_window",
            ),
        ),
        migrations.CreateModel(
            name="MemberProfile",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("member_id", models.UUIDField(default=uuid.uuid4, unique=True)),
                (
                    "completed_subscriptions",
                    models.PositiveIntegerField(
                        default=0, help_text="Paid subscriptions completed; drives first-time-only codes"
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="member_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Member Profile",
                "verbose_name_plural": "Member Profiles",
                "db_table": "promotion_member_profiles",
            },
        ),
    ]
