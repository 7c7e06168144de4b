"""
Celery entry point

    celery -A celery_worker.celery worker --beat --loglevel=info
"""
import os
from ispmanager import celery, create_app

app = create_app(os.environ.get('FLASK_ENV', 'production'))
