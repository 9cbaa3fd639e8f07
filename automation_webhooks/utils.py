"""
Generic utilities.
"""

import concurrent.futures
import functools
import hmac
import os
import time
from functools import wraps
from hashlib import sha1
from typing import Callable, Iterable, List, TypeVar

import cachetools.func
import requests
from flask import jsonify, request, Response, url_for
from urlobject import URLObject

from automation_webhooks import logger
from automation_webhooks.auth import get_github_session

T = TypeVar("T")
R = TypeVar("R")

# Upper bound on parallel API calls from one handler.
MAX_CONCURRENT_REQUESTS = 8


def _check_auth(username, password):
    """
    Checks if a username / password combination is valid.
    """
    return (
        username == os.environ.get('HTTP_BASIC_AUTH_USERNAME') and
        password == os.environ.get('HTTP_BASIC_AUTH_PASSWORD')
    )

def _authenticate():
    """
    Sends a 401 response that enables basic auth
    """
    return Response(
        'Could not verify your access level for that URL.\n'
        'You have to login with proper credentials', 401,
        {'WWW-Authenticate': 'Basic realm="Login Required"'}
    )

def requires_auth(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        auth = request.authorization
        if not auth or not _check_auth(auth.username, auth.password):
            return _authenticate()
        return f(*args, **kwargs)
    return decorated


class RequestFailed(Exception):
    pass

def log_check_response(response, raise_for_status=True):
    """
    Logs HTTP request and response at debug level and checks if it succeeded.

    Arguments:
        response (requests.Response)
        raise_for_status (bool): if True, call raise_for_status on the response
            also.
    """
    msg = "Request: {0.method} {0.url}: {0.body!r}".format(response.request)
    logger.debug(msg)
    msg = "Response: {0.status_code} {0.reason!r} for {0.url}: {0.content!r}".format(response)
    logger.debug(msg)
    if raise_for_status:
        try:
            response.raise_for_status()
        except Exception as exc:
            req = response.request
            raise RequestFailed(f"HTTP request failed: {req.method} {req.url}. Response body: {response.content}") from exc


def log_rate_limit():
    """Get stats from GitHub about the current rate limit, and log them."""
    rate = get_github_session().get("/rate_limit").json()['rate']
    reset = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(rate['reset']))
    logger.info(f"Rate limit: {rate['limit']}, used {rate['used']}, remaining {rate['remaining']}. Reset is at {reset}")


def is_valid_payload(secret: str, signature: str, payload: bytes) -> bool:
    """
    Ensure payload is valid according to signature.

    Make sure the payload hashes to the signature as calculated using
    the shared secret.

    Arguments:
        secret (str): The shared secret
        signature (str): Signature as calculated by the server, sent in
            the request
        payload (bytes): The request payload

    Returns:
        bool: Is the payload legit?
    """
    if not secret or not signature:
        return False
    mac = hmac.new(secret.encode(), msg=payload, digestmod=sha1)
    digest = 'sha1=' + mac.hexdigest()
    return hmac.compare_digest(digest.encode(), signature.encode())


def text_summary(text, length=40):
    """
    Make a summary of `text`, at most `length` chars long.

    The middle will be elided if needed.
    """
    if len(text) <= length:
        return text
    else:
        start = (length - 3) // 2
        end = length - 3 - start
        return text[:start] + "..." + text[-end:]


def first_line(text: str) -> str:
    """The first line of `text`, which is the subject of a commit message."""
    return (text or "").split("\n", 1)[0]


def paginated_get(url, session=None, limit=None, per_page=100, callback=None, **kwargs):
    """
    Retrieve all objects from a paginated API.

    Assumes that the pagination is specified in the "link" header, like
    Github's v3 API.

    The `limit` describes how many results you'd like returned.  You might get
    more than this, but you won't make more requests to the server once this
    limit has been exceeded.  For example, paginating by 100, if you set a
    limit of 250, three requests will be made, and you'll get 300 objects.

    """
    url = URLObject(url).set_query_param('per_page', str(per_page))
    limit = limit or 999999999
    session = session or requests.Session()
    returned = 0
    while url:
        resp = session.get(url, **kwargs)
        log_check_response(resp)
        if callable(callback):
            callback(resp)
        for item in resp.json():
            yield item
            returned += 1
        url = None
        if resp.links and returned < limit:
            url = resp.links.get("next", {}).get("url", "")


def map_concurrently(func: Callable[[T], R], items: Iterable[T]) -> List[R]:
    """
    Call `func` on each of `items` on a thread pool.

    The results are returned in the order of `items`, regardless of the
    order the calls finish in.  The first exception raised is re-raised.
    """
    items = list(items)
    if not items:
        return []
    workers = min(MAX_CONCURRENT_REQUESTS, len(items))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(func, items))


# A list of all the memoized functions, so that `clear_memoized_values` can
# clear them all.
_memoized_functions = []

def memoize(func):
    """Cache the value returned by a function call forever."""
    func = functools.lru_cache()(func)
    _memoized_functions.append(func)
    return func

def memoize_timed(minutes):
    """Cache the value of a function for `minutes` minutes."""
    def _timed(func):
        # We use time.time as the timer so that freezegun can test it, and in a
        # new function so that freezegun's patching will work.  Freezegun doesn't
        # patch time.monotonic, and we aren't that picky about the time anyway.
        def patchable_timer():
            return time.time()
        func = cachetools.func.ttl_cache(ttl=60 * minutes, timer=patchable_timer)(func)
        _memoized_functions.append(func)
        return func
    return _timed

def clear_memoized_values():
    """Clear all the values saved by @memoize and @memoize_timed, to ensure isolated tests."""
    for func in _memoized_functions:
        func.cache_clear()


def minimal_wsgi_environ():
    values = {
        "HTTP_HOST", "SERVER_NAME", "SERVER_PORT", "REQUEST_METHOD",
        "SCRIPT_NAME", "PATH_INFO", "QUERY_STRING", "wsgi.url_scheme",
    }
    return {key: value for key, value in request.environ.items()
            if key in values}


def queue_task(task, *args, **kwargs):
    """
    Queue a task to run in the background via Celery.

    Returns the HTTP response to return from a view.
    """
    result = task.delay(*args, wsgi_environ=minimal_wsgi_environ(), **kwargs)
    status_url = url_for("tasks.status", task_id=result.id, _external=True)
    logger.info(f"Job status URL: {status_url}")
    resp = jsonify({"message": "queued", "status_url": status_url})
    resp.status_code = 202
    resp.headers["Location"] = status_url
    return resp


def sentry_extra_context(data_dict):
    """Apply the keys and values from data_dict to the Sentry extra context."""
    import sentry_sdk
    for key, value in data_dict.items():
        sentry_sdk.set_extra(key, value)
