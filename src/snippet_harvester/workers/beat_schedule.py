"""Celery Beat periodic task schedule.

Beat does not know the scrape time.  It ticks every minute and the tick
task decides, from the persisted policy, whether the trigger fired since
the previous tick.  Changing ``scrape_time`` through the API therefore takes
effect without restarting Beat.

+---------------------------+---------------------+-----------------------------+
| Task name                 | Schedule            | Purpose                     |
+===========================+=====================+=============================+
| scheduler_tick            | Every minute        | Run a batch when the stored |
|                           |                     | trigger has fired.          |
+---------------------------+---------------------+-----------------------------+
"""

from __future__ import annotations

from celery.schedules import crontab

beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    "scheduler_tick": {
        "task": "snippet_harvester.scraper.tasks.scheduler_tick_task",
        "schedule": crontab(minute="*"),
        "options": {
            "queue": "scraping",
            "expires": 55,  # discard if not started before the next tick
        },
    },
}
