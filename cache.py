import hashlib
import json
import logging
import os
from functools import wraps

import redis
from flask import Response, jsonify, request

logger = logging.getLogger(__name__)

# DB 1 keeps cached views apart from anything else on the default DB
DEFAULT_REDIS_URL = 'redis://localhost:6379/1'

_state = {'client': None, 'checked': False}


def init_cache(url=None):
    """Connect to Redis once; on failure the decorators run uncached."""
    url = url or os.getenv('REDIS_URL', DEFAULT_REDIS_URL)
    _state['checked'] = True
    try:
        client = redis.from_url(url, socket_connect_timeout=1)
        client.ping()
        _state['client'] = client
        logger.info("[Cache] Redis connected at %s", url)
    except redis.RedisError as e:
        _state['client'] = None
        logger.warning("[Cache] Redis not available (%s); running in no-cache mode", e)
    return _state['client']


def disable_cache():
    _state['client'] = None
    _state['checked'] = True


def get_client():
    if not _state['checked']:
        init_cache()
    return _state['client']


def get_cache_version(client, prefix):
    try:
        v = client.get(f"version:{prefix}")
    except redis.RedisError:
        return "1"
    return v.decode('utf-8') if v else "1"


def generate_cache_key(client, prefix):
    """Key on prefix version, path and sorted query arguments."""
    key_parts = [prefix, get_cache_version(client, prefix), request.path]
    if request.args:
        key_parts.append(json.dumps(request.args.to_dict(flat=False), sort_keys=True))
    key_str = "|".join(key_parts)
    return f"cache:{hashlib.sha256(key_str.encode()).hexdigest()}"


def invalidate_cache(prefix):
    """Invalidate every key under ``prefix`` by bumping its version."""
    client = get_client()
    if client is None:
        return
    try:
        client.incr(f"version:{prefix}")
        logger.info("[Cache] Invalidated prefix: %s", prefix)
    except redis.RedisError as e:
        logger.warning("[Cache] Invalidation of %s failed: %s", prefix, e)


def cache_response(ttl=None, prefix='view'):
    """
    Cache successful JSON GET responses in Redis for ``ttl`` seconds
    (``CACHE_TTL`` env, default 300).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            client = get_client()
            if client is None or request.method != 'GET':
                return f(*args, **kwargs)

            cache_key = generate_cache_key(client, prefix)
            try:
                cached = client.get(cache_key)
                if cached:
                    return Response(cached, mimetype='application/json')
            except redis.RedisError as e:
                logger.warning("[Cache] Read error: %s", e)

            response = f(*args, **kwargs)
            status = 200
            if isinstance(response, tuple):
                response, status = response[0], response[1]
            if not hasattr(response, 'get_data'):
                response = jsonify(response)

            if status == 200 and response.mimetype == 'application/json':
                try:
                    client.setex(cache_key, ttl or int(os.getenv('CACHE_TTL', 300)), response.get_data())
                except redis.RedisError as e:
                    logger.warning("[Cache] Write error: %s", e)
            return response, status
        return decorated_function
    return decorator
