from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('social', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='friendship',
            name='mutual_block',
            field=models.BooleanField(default=False),
        ),
        migrations.AddField(
            model_name='broadcastevent',
            name='delivered_channels',
            field=models.JSONField(blank=True, default=list),
        ),
    ]
