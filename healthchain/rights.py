"""
Consumable rights of a patient, per service category.

The aggregate getPatientRights call returns three positional arrays
(remaining counts, used amounts, limits) indexed by ServiceCategory. When
a contract revision lacks it, the six counts and six used amounts are read
one by one and the limits come from the patient's policy.

getPatientRightsDetailed tags each position with its service type, so
its entries are placed by category instead of by index.
"""

import logging
from typing import List, Optional

from healthchain.exceptions import DecodeMismatch, NotFound, RpcError
from healthchain.fetcher import format_ether
from healthchain.models import CATEGORY_COUNT, CategoryRights, Policy, RecordKind, ServiceCategory

logger = logging.getLogger(__name__)


def build_snapshot(remaining, used_amounts, limits) -> List[CategoryRights]:
    """Zip positional arrays into six entries in category order, padding with zeros."""
    snapshot = []
    for category in ServiceCategory:
        index = int(category)
        snapshot.append(CategoryRights(
            category=category,
            remaining_count=max(int(remaining[index]), 0) if index < len(remaining) else 0,
            used_amount=used_amounts[index] if index < len(used_amounts) else "0",
            limit=limits[index] if index < len(limits) else "0",
        ))
    return snapshot


class RightsAggregator:
    def __init__(self, accessor, resolver, fetcher):
        self.accessor = accessor
        self.resolver = resolver
        self.fetcher = fetcher

    def get_rights(self, owner: str) -> List[CategoryRights]:
        """Always six entries, in ServiceCategory order."""
        try:
            remaining, used_amounts, limits = self.accessor.call_read("getPatientRights", owner)
            return build_snapshot(
                [int(value) for value in remaining],
                [format_ether(value) for value in used_amounts],
                [format_ether(value) for value in limits],
            )
        except (RpcError, ValueError, TypeError) as e:
            logger.warning(f"getPatientRights unavailable for {owner}, reading per category: {e}")
            return self._per_category(owner)

    def get_rights_detailed(self, owner: str) -> List[CategoryRights]:
        """
        Rights keyed by the service type the contract reports for each position.

        getPatientRightsDetailed returns (serviceTypes, remaining, used, limits);
        entries are placed by their service type instead of their position.
        Categories the contract leaves out come back zeroed. Falls back to
        get_rights when the call is unavailable.
        """
        try:
            service_types, remaining, used_amounts, limits = self.accessor.call_read(
                "getPatientRightsDetailed", owner
            )
            by_category = {}
            for position, service_type in enumerate(service_types):
                try:
                    category = ServiceCategory(int(service_type))
                except ValueError:
                    logger.debug(f"Skipping unknown service type {service_type!r} for {owner}")
                    continue
                by_category[category] = (
                    int(remaining[position]),
                    format_ether(used_amounts[position]),
                    format_ether(limits[position]),
                )
        except (RpcError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"getPatientRightsDetailed unavailable for {owner}: {e}")
            return self.get_rights(owner)

        return build_snapshot(
            [by_category.get(category, (0, "0", "0"))[0] for category in ServiceCategory],
            [by_category.get(category, (0, "0", "0"))[1] for category in ServiceCategory],
            [by_category.get(category, (0, "0", "0"))[2] for category in ServiceCategory],
        )

    def _read_or_zero(self, method: str, owner: str, index: int) -> int:
        try:
            return int(self.accessor.call_read(method, owner, index))
        except (RpcError, ValueError, TypeError) as e:
            logger.debug(f"{method}({owner}, {index}) failed, using 0: {e}")
            return 0

    def _per_category(self, owner: str) -> List[CategoryRights]:
        remaining = []
        used_amounts = []
        for index in range(CATEGORY_COUNT):
            remaining.append(self._read_or_zero("patientRights", owner, index))
            used_amounts.append(format_ether(self._read_or_zero("patientUsedAmounts", owner, index)))

        policy = self.limits_policy(owner)
        limits = policy.limits() if policy is not None else ["0"] * CATEGORY_COUNT
        return build_snapshot(remaining, used_amounts, limits)

    def limits_policy(self, owner: str) -> Optional[Policy]:
        """First active policy of the owner, else the first one found, else None"""
        first = None
        try:
            policy_ids = sorted(self.resolver.resolve_ids(owner, RecordKind.POLICY))
        except (RpcError, NotFound, DecodeMismatch) as e:
            logger.warning(f"Could not resolve policies of {owner} for limits: {e}")
            return None

        for policy_id in policy_ids:
            try:
                policy = self.fetcher.fetch(RecordKind.POLICY, policy_id)
            except (NotFound, DecodeMismatch):
                continue
            if policy.is_active:
                return policy
            if first is None:
                first = policy
        return first
