"""
Release and pull request automation for a GitHub organization.

GitHub webhooks arrive at a Flask app, which queues the work as Celery
tasks.  The same Celery app is the worker, run from worker.py.
"""

import logging
import os
import sys

from celery import Celery
from flask import Flask
from flask_sslify import SSLify
import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.flask import FlaskIntegration
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import import_string

__version__ = "0.1.0"

log_level = os.environ.get('LOGLEVEL', 'INFO').upper()
logger = logging.getLogger(__name__)
handler = logging.StreamHandler(sys.stderr)
handler.setLevel(log_level)
logger.addHandler(handler)
logger.setLevel(log_level)

# Every GitHub, Jira and Slack call would be logged by urllib3.
logging.getLogger("urllib3").setLevel("WARN")

celery = Celery(strict_typing=False)


def expand_config(name=None):
    """The dotted path of a config class: "testing" is TestingConfig."""
    return f"automation_webhooks.config.{(name or 'default').capitalize()}Config"


def create_app(config=None):
    """
    Make the web app that receives GitHub webhooks and release requests.

    `config` names a class in config.py, from $AUTOMATION_WEBHOOKS_CONFIG if
    not given.
    """
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app)   # type: ignore[method-assign]
    config = config or os.environ.get("AUTOMATION_WEBHOOKS_CONFIG") or "default"
    # An instance, not the class: creating it sets the redis TLS options.
    app.config.from_object(import_string(expand_config(config))())

    create_celery_app(app)
    if not app.debug and not app.testing:
        SSLify(app)

    from .github_views import github_bp
    app.register_blueprint(github_bp, url_prefix="/github")
    from .tasks import tasks as tasks_blueprint
    app.register_blueprint(tasks_blueprint, url_prefix="/tasks")

    return app


def create_celery_app(app=None, config="worker"):
    """
    Configure the Celery app from a Flask app, making one if needed.

    Tasks run inside the Flask app context.  Tasks queued by `queue_task`
    also get a request context, rebuilt from the `wsgi_environ` it sends.
    """
    if os.environ.get("SENTRY_DSN", ""):
        sentry_sdk.init(integrations=[CeleryIntegration(), FlaskIntegration()])

    app = app or create_app(config=config)
    celery.main = app.import_name
    celery.conf.update(app.config)

    class ContextTask(celery.Task): # type: ignore[name-defined]
        abstract = True

        def __call__(self, *args, **kwargs):
            wsgi_environ = kwargs.pop("wsgi_environ", None)
            with app.app_context():
                if wsgi_environ is None:
                    return self.run(*args, **kwargs)
                with app.request_context(wsgi_environ):
                    return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery
