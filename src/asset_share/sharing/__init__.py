"""Share-link engine: issue, evaluate, record, manage and query links."""

from .errors import (
    AssetNotFound,
    ShareConflict,
    ShareError,
    ShareForbidden,
    ShareLinkInactive,
    ShareLinkNotFound,
    ShareUnavailable,
    ShareValidationError,
)
from .evaluator import AccessEvaluator
from .issuer import TokenIssuer
from .lifecycle import UNSET, LifecycleManager
from .model import (
    AccessLogEntry,
    AccessType,
    Decision,
    DenyReason,
    ExpiryStatus,
    Page,
    RequestMeta,
    ShareLink,
    ShareLinkFilter,
    ShareLinkSort,
    ShareLinkSummary,
    SortKey,
    SortOrder,
)
from .passwords import SharePasswordHasher
from .query import AdminQueryEngine
from .recorder import AccessRecorder
from .repository import InMemoryShareLinkRepository, ShareLinkRepository

__all__ = [
    'AccessEvaluator',
    'AccessLogEntry',
    'AccessRecorder',
    'AccessType',
    'AdminQueryEngine',
    'AssetNotFound',
    'Decision',
    'DenyReason',
    'ExpiryStatus',
    'InMemoryShareLinkRepository',
    'LifecycleManager',
    'Page',
    'RequestMeta',
    'ShareConflict',
    'ShareError',
    'ShareForbidden',
    'ShareLink',
    'ShareLinkFilter',
    'ShareLinkInactive',
    'ShareLinkNotFound',
    'ShareLinkRepository',
    'ShareLinkSort',
    'ShareLinkSummary',
    'SharePasswordHasher',
    'ShareUnavailable',
    'ShareValidationError',
    'SortKey',
    'SortOrder',
    'TokenIssuer',
    'UNSET',
]
