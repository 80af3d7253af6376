"""
Unit tests for the Redis response cache, with Redis replaced by a mock client
"""
import unittest
from unittest.mock import MagicMock

import redis
from flask import Flask, jsonify

import cache


def _make_app(calls):
    app = Flask(__name__)

    @app.route('/data')
    @cache.cache_response(ttl=60, prefix='data')
    def data():
        calls.append(1)
        return jsonify({'value': len(calls)})

    @app.route('/broken')
    @cache.cache_response(ttl=60, prefix='data')
    def broken():
        return jsonify({'error': 'bad'}), 400

    return app


class TestCacheResponse(unittest.TestCase):

    def setUp(self):
        self.calls = []
        self.client = MagicMock()
        self.client.get.return_value = None
        cache._state.update(client=self.client, checked=True)
        self.app = _make_app(self.calls).test_client()

    def tearDown(self):
        cache.disable_cache()

    def test_miss_then_store(self):
        response = self.app.get('/data?x=1')

        self.assertEqual(response.get_json(), {'value': 1})
        self.client.setex.assert_called_once()
        key, ttl, body = self.client.setex.call_args.args
        self.assertTrue(key.startswith('cache:'))
        self.assertEqual(ttl, 60)
        self.assertIn(b'"value"', body)

    def test_hit_skips_view(self):
        self.client.get.side_effect = lambda k: b'2' if k.startswith('version:') else b'{"value": 99}'

        response = self.app.get('/data')

        self.assertEqual(response.get_json(), {'value': 99})
        self.assertEqual(self.calls, [])

    def test_errors_are_not_cached(self):
        response = self.app.get('/broken')
        self.assertEqual(response.status_code, 400)
        self.client.setex.assert_not_called()

    def test_redis_failure_falls_through(self):
        self.client.get.side_effect = redis.ConnectionError('down')
        self.client.setex.side_effect = redis.ConnectionError('down')

        response = self.app.get('/data')

        self.assertEqual(response.get_json(), {'value': 1})

    def test_invalidate_bumps_version(self):
        cache.invalidate_cache('data')
        self.client.incr.assert_called_once_with('version:data')

    def test_disabled_cache_passes_through(self):
        cache.disable_cache()
        self.app.get('/data')
        self.app.get('/data')
        self.assertEqual(len(self.calls), 2)
        cache.invalidate_cache('data')


if __name__ == '__main__':
    unittest.main(verbosity=2)
