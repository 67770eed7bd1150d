"""
Add celery-beat schedules for the webhook retry queue.

- Sweep retry records every 5 minutes (dead-letter expired ones, replay due ones)
- Purge old dead letters once a day
"""

from django.db import migrations

SWEEP_TASK_NAME = "Sweep Webhook Retries"
PURGE_TASK_NAME = "Purge Dead Letter Webhooks"


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the retry queue."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    every_five_minutes, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )
    PeriodicTask.objects.get_or_create(
        name=SWEEP_TASK_NAME,
        defaults={
            "task": "payments.tasks.sweep_webhook_retries",
            "interval": every_five_minutes,
            "enabled": True,
            "description": (
                "Marks retry records past their window as dead letters and "
                "replays webhook deliveries whose next attempt is due."
            ),
        },
    )

    # 03:30 UTC daily
    nightly, _ = CrontabSchedule.objects.get_or_create(
        minute="30",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )
    PeriodicTask.objects.get_or_create(
        name=PURGE_TASK_NAME,
        defaults={
            "task": "payments.tasks.purge_dead_letter_webhooks",
            "crontab": nightly,
            "enabled": True,
            "description": "Deletes dead-lettered webhooks older than the retention window.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[SWEEP_TASK_NAME, PURGE_TASK_NAME]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
