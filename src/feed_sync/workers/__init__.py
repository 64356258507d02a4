"""Celery application, Beat schedule and maintenance tasks."""
