"""Celery worker running the ASPOS sync queue and scheduler hooks."""
