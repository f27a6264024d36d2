import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("authentication", "0001_initial"),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="user",
            name="clinic",
            field=models.ForeignKey(
                blank=True,
                help_text="Clinic administered by this user (brand role)",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="users",
                to="billing.clinic",
            ),
        ),
    ]
