"""Celery worker deployment: app, beat schedule and the Redis batch guard."""
