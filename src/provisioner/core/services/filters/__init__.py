"""Provisioning filters run during login."""

from .account_sync import AccountSync, diff_account, parse_account
from .base import DEFAULT_PRIORITY, FilterContext, IdentityFilter
from .chain import (
    FILTER_REGISTRY,
    FilterChain,
    Pipeline,
    build_pipeline,
    normalize_filter_name,
    register_filter,
    resolve_filter,
)
from .org_unit_sync import OrgUnitSync

__all__ = [
    "AccountSync",
    "DEFAULT_PRIORITY",
    "FILTER_REGISTRY",
    "FilterChain",
    "FilterContext",
    "IdentityFilter",
    "OrgUnitSync",
    "Pipeline",
    "build_pipeline",
    "diff_account",
    "normalize_filter_name",
    "parse_account",
    "register_filter",
    "resolve_filter",
]
