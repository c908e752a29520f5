"""Extraction engine.

Fetches pages, applies CSS selectors and drives recurring batches.

Sub-modules:
- ``config``             constants and tuning parameters
- ``models``             value types (targets, results, policy, batches)
- ``trigger``            ``HH:MM`` / cron recurrence expressions
- ``http_fetcher``       static-mode fetch through httpx
- ``playwright_fetcher`` dynamic-mode fetch through headless Chromium
- ``fetcher``            mode dispatch
- ``content_extractor``  selector application and fragment cleanup
- ``runner``             retries and outcome classification for one target
- ``scheduler``          batch loop, overlap guard and timer
- ``tasks``              Celery tasks for worker deployments
- ``router``             FastAPI router (``/api/scrape``, ``/api/data``)
"""
