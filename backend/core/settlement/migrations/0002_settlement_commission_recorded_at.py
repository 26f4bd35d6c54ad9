# Generated manually. Keep in sync with settlement/models.py.

from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="settlement",
            name="commission_recorded_at",
            field=models.DateTimeField(
                blank=True,
                help_text="Set once the commission split of an inbound settlement is recorded.",
                null=True,
            ),
        ),
    ]
