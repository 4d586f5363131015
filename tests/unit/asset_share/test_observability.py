"""Tests for structured logging, metrics and request middleware."""

from __future__ import annotations

import json
import logging

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from asset_share.observability.logging import configure_logging, request_id_ctx
from asset_share.observability.metrics import metrics_text, observe_issued, observe_recorded
from asset_share.observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
    normalize_path,
)
from asset_share.sharing.model import generate_share_token


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestNormalizePath:

    def test_token_collapsed(self):
        token = generate_share_token()
        assert normalize_path(f'/api/v1/s/{token}') == '/api/v1/s/{token}'

    def test_share_link_id_collapsed(self):
        assert normalize_path('/api/v1/share-links/shl_abc/revoke') == '/api/v1/share-links/{id}/revoke'

    def test_asset_id_collapsed(self):
        assert normalize_path('/api/v1/assets/asset_1/share-links') == '/api/v1/assets/{asset_id}/share-links'

    def test_collection_path_unchanged(self):
        assert normalize_path('/api/v1/share-links') == '/api/v1/share-links'


class TestStructuredLogging:

    def test_stdlib_records_render_as_json_with_request_id(self, restore_root_logging):
        configure_logging(level='DEBUG', json_output=True, force=True)
        formatter = logging.getLogger().handlers[0].formatter
        record = logging.LogRecord(
            'asset_share.sharing.issuer', logging.INFO, __file__, 1,
            'Share link %s created', ('shl_1',), None,
        )

        token = request_id_ctx.set('req-12345678')
        try:
            line = formatter.format(record)
        finally:
            request_id_ctx.reset(token)

        data = json.loads(line)
        assert data['event'] == 'Share link shl_1 created'
        assert data['level'] == 'info'
        assert data['logger'] == 'asset_share.sharing.issuer'
        assert data['request_id'] == 'req-12345678'
        assert 'timestamp' in data

    def test_secret_keys_scrubbed(self, restore_root_logging):
        configure_logging(json_output=True, force=True)
        formatter = logging.getLogger().handlers[0].formatter
        record = logging.LogRecord(
            'asset_share.sharing.access', logging.INFO, __file__, 1,
            'access attempt', (), None,
        )
        record.password = 'abc123'
        record.token = generate_share_token()

        line = formatter.format(record)

        assert 'abc123' not in line
        assert record.token not in line
        data = json.loads(line)
        assert data['event'] == 'access attempt'
        assert data['password'] == data['token'] == '<redacted>'

    def test_configure_is_idempotent_without_force(self, restore_root_logging):
        configure_logging(force=True)
        handlers = list(logging.getLogger().handlers)
        configure_logging(level='DEBUG')
        assert logging.getLogger().handlers == handlers


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.get('/api/v1/s/{token}')
    async def echo(token: str, request: Request):
        return {'request_id': request_id_ctx.get(), 'state_id': request.state.request_id}

    return app


class TestMiddleware:

    def test_request_id_visible_inside_handler(self):
        r = TestClient(_app()).get(
            f'/api/v1/s/{generate_share_token()}', headers={'X-Request-ID': 'abcdef12'},
        )
        assert r.json() == {'request_id': 'abcdef12', 'state_id': 'abcdef12'}
        assert r.headers['X-Request-ID'] == 'abcdef12'

    def test_metrics_use_normalized_path(self):
        labels = {'method': 'GET', 'path': '/api/v1/s/{token}', 'status': '200'}
        before = REGISTRY.get_sample_value('share_http_requests_total', labels) or 0.0
        TestClient(_app()).get(f'/api/v1/s/{generate_share_token()}')
        assert REGISTRY.get_sample_value('share_http_requests_total', labels) == before + 1

    def test_spoofed_request_id_replaced(self):
        r = TestClient(_app()).get(
            f'/api/v1/s/{generate_share_token()}', headers={'X-Request-ID': 'a b'},
        )
        assert r.json()['request_id'] != 'a b'
        assert r.headers['X-Request-ID'] == r.json()['request_id']

    def test_metrics_text(self):
        body, content_type = metrics_text()
        assert b'share_access_decisions_total' in body
        assert content_type.startswith('text/plain')


class TestMetricHelpers:

    def _value(self, name: str, labels: dict[str, str]) -> float:
        return REGISTRY.get_sample_value(name, labels) or 0.0

    def test_observe_issued_splits_by_protection(self):
        before = self._value('share_links_issued_total', {'protected': 'true'})
        observe_issued(has_password=True)
        assert self._value('share_links_issued_total', {'protected': 'true'}) == before + 1

    def test_observe_recorded_counts_allow_and_type(self):
        allow = self._value('share_access_decisions_total', {'decision': 'ALLOW'})
        downloads = self._value('share_access_records_total', {'access_type': 'DOWNLOAD'})
        observe_recorded('DOWNLOAD')
        assert self._value('share_access_decisions_total', {'decision': 'ALLOW'}) == allow + 1
        assert self._value('share_access_records_total', {'access_type': 'DOWNLOAD'}) == downloads + 1
