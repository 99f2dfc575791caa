from souklist import create_app
from souklist.celery_app import create_celery_app

flask_app = create_app()
celery = create_celery_app(flask_app)

# Register task modules with this app instance.
import souklist.tasks.maintenance_tasks  # noqa: E402,F401
