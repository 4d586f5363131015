"""Shared fixtures for share-link engine tests."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from asset_share.clock import FixedClock
from asset_share.external import (
    AssetInfo,
    InMemoryAssetStore,
    InMemoryUserDirectory,
    UserInfo,
)
from asset_share.sharing.audit import InMemoryShareAuditEmitter
from asset_share.sharing.evaluator import AccessEvaluator
from asset_share.sharing.issuer import TokenIssuer
from asset_share.sharing.lifecycle import LifecycleManager
from asset_share.sharing.passwords import SharePasswordHasher
from asset_share.sharing.query import AdminQueryEngine
from asset_share.sharing.recorder import AccessRecorder
from asset_share.sharing.repository import InMemoryShareLinkRepository


def fast_hasher() -> SharePasswordHasher:
    """Argon2id with minimal cost so tests stay quick."""
    return SharePasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@dataclass
class Engine:
    clock: FixedClock
    assets: InMemoryAssetStore
    users: InMemoryUserDirectory
    repo: InMemoryShareLinkRepository
    hasher: SharePasswordHasher
    audit: InMemoryShareAuditEmitter
    issuer: TokenIssuer
    evaluator: AccessEvaluator
    recorder: AccessRecorder
    lifecycle: LifecycleManager
    query: AdminQueryEngine


def build_engine() -> Engine:
    clock = FixedClock()
    assets = InMemoryAssetStore([
        AssetInfo(
            id='asset_1',
            name='Quarterly Report.pdf',
            content_type='application/pdf',
            asset_type='DOCUMENT',
            file_key='uploads/asset_1.pdf',
        ),
        AssetInfo(
            id='asset_2',
            name='Brand Logo.png',
            content_type='image/png',
            asset_type='IMAGE',
            file_key='uploads/asset_2.png',
        ),
        AssetInfo(id='asset_draft', name='Draft without file'),
    ])
    users = InMemoryUserDirectory([
        UserInfo(id='user_1', name='Alice Admin', email='alice@example.com'),
        UserInfo(id='user_2', name='Bob Builder', email='bob@example.com'),
    ])
    repo = InMemoryShareLinkRepository(asset_store=assets, user_directory=users)
    hasher = fast_hasher()
    audit = InMemoryShareAuditEmitter()
    lifecycle = LifecycleManager(repo, hasher, clock, audit=audit)
    return Engine(
        clock=clock,
        assets=assets,
        users=users,
        repo=repo,
        hasher=hasher,
        audit=audit,
        issuer=TokenIssuer(repo, hasher, clock, asset_store=assets, audit=audit),
        evaluator=AccessEvaluator(repo, hasher, clock),
        recorder=AccessRecorder(repo, clock),
        lifecycle=lifecycle,
        query=AdminQueryEngine(repo, clock, lifecycle),
    )


@pytest.fixture
def engine() -> Engine:
    return build_engine()
