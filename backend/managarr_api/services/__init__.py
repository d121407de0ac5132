"""Service layer for upstream integrations and cross-instance reports."""

from .bulk import BulkActionError, BulkActionService
from .connection_test import ConnectionTester
from .fanout import FanoutResult, fan_out
from .health import HealthService
from .polling import Poller
from .reports import ReportService
from .tmdb import TmdbClient, TmdbError
from .upstream import (
    InstanceDisabledError,
    InstanceNotFoundError,
    InstanceTypeMismatchError,
    UpstreamError,
    UpstreamProxy,
)

__all__ = [
    "BulkActionError",
    "BulkActionService",
    "ConnectionTester",
    "FanoutResult",
    "HealthService",
    "InstanceDisabledError",
    "InstanceNotFoundError",
    "InstanceTypeMismatchError",
    "Poller",
    "ReportService",
    "TmdbClient",
    "TmdbError",
    "UpstreamError",
    "UpstreamProxy",
    "fan_out",
]
