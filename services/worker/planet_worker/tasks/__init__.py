"""Planet Worker Tasks."""

# Import all tasks to register them with Celery
from planet_worker.tasks import account  # noqa: F401
from planet_worker.tasks import index  # noqa: F401
