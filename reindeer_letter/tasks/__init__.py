"""
Celery tasks package.

This package contains the background tasks run by the Celery worker,
currently the scheduled-delivery sweep.
"""

from reindeer_letter.core.celery_app import celery_app

__all__ = ["celery_app"]
