"""
The Celery worker that runs the automation's tasks:

  $ celery --app=automation_webhooks.worker:application worker

It uses WorkerConfig, which imports the task modules.
"""

from automation_webhooks import create_celery_app

application = create_celery_app(config="worker")
