"""Static filter registry and the priority-ordered filter chain."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from src.provisioner.core.errors import ConfigurationError
from src.provisioner.core.models.identity import LoginRequest
from src.provisioner.core.models.outcome import PROCEED, FilterOutcome, Skip, Suspend
from src.provisioner.core.services.filters.account_sync import AccountSync
from src.provisioner.core.services.filters.base import FilterContext, IdentityFilter
from src.provisioner.core.services.filters.org_unit_sync import OrgUnitSync

FILTER_PREFIX = "provisioner:"

FilterFactory = Callable[[FilterContext, bool], object]


@dataclass(frozen=True)
class FilterRegistration:
    """How to build a filter; ``composite`` marks filters made of other filters."""

    name: str
    factory: FilterFactory
    composite: bool = False

    def create(self, context: FilterContext, chained: bool = False):
        product = self.factory(context, chained)
        if not self.composite and not isinstance(product, IdentityFilter):
            raise ConfigurationError(
                f"Filter '{self.name}' does not provide an identity filter "
                f"(got {type(product).__name__})"
            )
        return product


FILTER_REGISTRY: dict[str, FilterRegistration] = {}


def normalize_filter_name(name: str) -> str:
    """``Provisioner:Account_Sync`` and ``account_sync`` name the same filter."""
    name = name.strip().lower()
    if name.startswith(FILTER_PREFIX):
        name = name[len(FILTER_PREFIX):]
    return name


def register_filter(name: str, factory: FilterFactory, *, composite: bool = False) -> None:
    key = normalize_filter_name(name)
    FILTER_REGISTRY[key] = FilterRegistration(name=key, factory=factory, composite=composite)


def resolve_filter(name: str) -> FilterRegistration:
    key = normalize_filter_name(name)
    try:
        return FILTER_REGISTRY[key]
    except KeyError:
        known = ", ".join(sorted(FILTER_REGISTRY))
        raise ConfigurationError(f"Unknown filter '{name}' (known: {known})") from None


def unique_filter_names(names: list[str]) -> list[str]:
    """Normalized names in configuration order, duplicates dropped."""
    result: list[str] = []
    for name in names:
        key = normalize_filter_name(name)
        if key in result:
            logger.debug("Ignoring duplicate filter '{}'", name)
            continue
        result.append(key)
    return result


class FilterChain:
    """Runs several filters against one login, lowest priority first.

    The login gate is consulted once for the whole chain. A filter whose
    priority is already taken moves to the next free integer, so filters
    with equal priorities run in configuration order.
    """

    filter_id = "chain"

    def __init__(self, context: FilterContext, filter_names: list[str]):
        self.context = context
        names = unique_filter_names(filter_names)
        if not names:
            raise ConfigurationError("A filter chain needs at least one filter")

        self._filters: dict[int, IdentityFilter] = {}
        for name in names:
            registration = resolve_filter(name)
            if registration.composite:
                raise ConfigurationError(
                    f"Filter chains cannot contain another chain ('{name}')"
                )

            member = registration.create(context, chained=True)
            priority = member.priority
            while priority in self._filters:
                priority += 1
            if priority != member.priority:
                logger.debug(
                    "Filter '{}' priority {} is taken, using {}",
                    name,
                    member.priority,
                    priority,
                )
                member.priority = priority
            self._filters[priority] = member

    @property
    def ordered_filters(self) -> list[tuple[int, IdentityFilter]]:
        return sorted(self._filters.items())

    async def run(self, request: LoginRequest) -> FilterOutcome:
        decision = self.context.gate.check(request)
        if isinstance(decision, Suspend):
            return decision
        if isinstance(decision, Skip):
            return PROCEED

        for priority, member in self.ordered_filters:
            logger.debug("Running filter {} (priority {})", type(member).__name__, priority)
            outcome = await member.run(request)
            if isinstance(outcome, Suspend):
                return outcome
        return PROCEED

    def __repr__(self) -> str:
        members = ", ".join(repr(member) for _, member in self.ordered_filters)
        return f"FilterChain([{members}])"


Pipeline = IdentityFilter | FilterChain


def build_pipeline(context: FilterContext) -> Pipeline:
    """The configured provisioning pipeline: one filter alone, or a chain."""
    names = unique_filter_names(context.config.provisioning.filters)
    if not names:
        raise ConfigurationError("No provisioning filters configured")

    if len(names) == 1:
        registration = resolve_filter(names[0])
        if not registration.composite:
            return registration.create(context, chained=False)

    return resolve_filter(FilterChain.filter_id).create(context)


register_filter(AccountSync.filter_id, lambda context, chained: AccountSync(context, chained=chained))
register_filter(OrgUnitSync.filter_id, lambda context, chained: OrgUnitSync(context, chained=chained))
register_filter(
    FilterChain.filter_id,
    lambda context, chained: FilterChain(context, context.config.provisioning.filters),
    composite=True,
)
