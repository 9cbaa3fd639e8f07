"""
Flask and Celery settings, chosen by name with $AUTOMATION_WEBHOOKS_CONFIG.
"""

import os


def _redis_url():
    return os.environ.get("REDIS_TLS_URL", os.environ.get("REDIS_URL", "redis://"))


class DefaultConfig:
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "secrettoeveryone")
    GITHUB_WEBHOOKS_SECRET = os.environ.get("GITHUB_WEBHOOKS_SECRET")
    # Tasks are queued with webhook payloads, which are JSON already.
    CELERY_ACCEPT_CONTENT = ["json"]
    CELERY_TASK_SERIALIZER = "json"
    CELERY_RESULT_SERIALIZER = "json"
    CELERY_EAGER_PROPAGATES = True
    BROKER_URL = _redis_url()
    CELERY_RESULT_BACKEND = _redis_url()
    # Whether to check the certificate of a TLS ("rediss://") broker.
    REDIS_CERT_REQS = os.environ.get("REDIS_CERT_REQS", "none")

    def __init__(self):
        if self.BROKER_URL.startswith("rediss"):
            tls_options = f"?ssl_cert_reqs={self.REDIS_CERT_REQS}"
            self.BROKER_URL += tls_options
            self.CELERY_RESULT_BACKEND += tls_options


class WorkerConfig(DefaultConfig):
    CELERY_IMPORTS = (
        'automation_webhooks.tasks.github',
    )


class DevelopmentConfig(DefaultConfig):
    DEBUG = True


class TestingConfig(DefaultConfig):
    TESTING = True
    GITHUB_WEBHOOKS_SECRET = "testing-secret"
