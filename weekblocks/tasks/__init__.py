"""Celery application and scheduled maintenance jobs for the week block store."""
