# Worker entry point: celery -A subsync.workers.celery_app worker --loglevel=info
import os

from dotenv import load_dotenv

from subsync import create_app
from subsync.logging_config import configure_logging_for_worker

load_dotenv()
os.environ.setdefault("FLASK_CONFIG", "production")

flask_app = create_app(os.getenv("FLASK_CONFIG"))
configure_logging_for_worker()

celery = flask_app.extensions["celery"]
celery.autodiscover_tasks(["subsync.workers"], related_name="tasks")
