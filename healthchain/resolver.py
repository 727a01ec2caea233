"""
Resolve which policies and service requests belong to an account.

Resolution tries, in order:

1. the local identifier cache (returned as-is when non-empty),
2. the contract's per-owner accessor,
3. a bounded backward scan from the record counter,
4. the creation event logs on the read-only endpoint,
5. the cache again, possibly empty.

Node failures inside a step only mean the step produced nothing. A wallet
rejection is never swallowed.
"""

import logging
from typing import Callable, List, NamedTuple, Optional, Set

from web3 import Web3

from healthchain import constants
from healthchain.exceptions import DecodeMismatch, NotFound, RpcError
from healthchain.models import RecordKind

logger = logging.getLogger(__name__)

# Errors that make a resolution step yield nothing instead of failing
STAGE_ERRORS = (RpcError, NotFound, DecodeMismatch, ValueError)


class RecordSource(NamedTuple):
    """Contract entry points describing where one record kind can be discovered"""
    accessor: str
    counter: str
    event: str
    id_arg: str
    owner_arg: str


SOURCES = {
    RecordKind.POLICY: RecordSource(
        accessor="getUserPolicies",
        counter="policyCounter",
        event="PolicyCreated",
        id_arg="policyId",
        owner_arg="policyHolder",
    ),
    RecordKind.SERVICE_REQUEST: RecordSource(
        accessor="getPatientServiceRequests",
        counter="serviceRequestCounter",
        event="ServiceRequested",
        id_arg="requestId",
        owner_arg="patient",
    ),
}


class RecordResolver:
    """Finds the record ids owned by an account, degrading to the cache."""

    def __init__(self, accessor, fetcher, cache, max_scan: int = constants.MAX_SCAN,
                 chain_id: Optional[int] = None):
        self.accessor = accessor
        self.fetcher = fetcher
        self.cache = cache
        self.max_scan = max_scan
        # Configured chain id for the cache namespace
        self._chain_id = chain_id
        self.strategies: List[Callable[[str, RecordKind], Optional[Set[int]]]] = [
            self._from_accessor,
            self._from_counter_scan,
            self._from_event_logs,
        ]

    def chain_id(self):
        """Cache namespace chain id: the configured one, else asked from the node"""
        if self._chain_id is not None:
            return self._chain_id
        try:
            return self.accessor.chain_id()
        except RpcError as e:
            logger.warning(f"Chain id unavailable, using 'unknown' cache namespace: {e}")
            return "unknown"

    def resolve_ids(self, owner: str, kind: RecordKind = RecordKind.POLICY) -> Set[int]:
        """
        Return every known id of ``kind`` owned by ``owner``.

        A non-empty cache entry is returned without any RPC call. A step
        returning None passes to the next one; a set (even an empty one from
        the contract accessor) ends resolution and is merged into the cache.
        """
        chain_id = self.chain_id()
        cached = self.cache.get(chain_id, owner, kind)
        if cached:
            logger.info(f"Loaded {len(cached)} {kind.value} id(s) for {owner} from cache")
            return cached

        for strategy in self.strategies:
            try:
                record_ids = strategy(owner, kind)
            except STAGE_ERRORS as e:
                logger.warning(f"{strategy.__name__} found no {kind.value} ids for {owner}: {e}")
                continue
            if record_ids is None:
                continue
            self.cache.merge(chain_id, owner, record_ids, kind)
            logger.info(f"Resolved {len(record_ids)} {kind.value} id(s) for {owner} via {strategy.__name__}")
            return set(record_ids)

        logger.warning(f"All lookups failed for {owner}; using cached {kind.value} ids")
        return self.cache.get(chain_id, owner, kind)

    def resolve_records(self, owner: str, kind: RecordKind = RecordKind.POLICY):
        """Resolve ids and fetch the records behind them"""
        return self.fetcher.fetch_all(kind, self.resolve_ids(owner, kind))

    def remember(self, owner: str, kind: RecordKind, record_id: int) -> None:
        """Record a freshly created id in the cache."""
        self.cache.add(self.chain_id(), owner, record_id, kind)

    def _from_accessor(self, owner: str, kind: RecordKind) -> Optional[Set[int]]:
        record_ids = self.accessor.call_read(SOURCES[kind].accessor, owner, read_only=True)
        return {int(record_id) for record_id in record_ids}

    def _from_counter_scan(self, owner: str, kind: RecordKind) -> Optional[Set[int]]:
        latest = int(self.accessor.call_read(SOURCES[kind].counter, read_only=True))
        if latest <= 0:
            return None

        # Partial results are kept; nothing beyond the bound is guaranteed
        lowest = max(1, latest - self.max_scan + 1)
        found = set()
        for record_id in range(latest, lowest - 1, -1):
            try:
                self.fetcher.fetch(kind, record_id, owner=owner)
            except (NotFound, DecodeMismatch):
                continue
            found.add(record_id)
        return found or None

    def _from_event_logs(self, owner: str, kind: RecordKind) -> Optional[Set[int]]:
        source = SOURCES[kind]
        events = self.accessor.query_events(
            source.event,
            argument_filters={source.owner_arg: Web3.to_checksum_address(owner)},
        )
        found = set()
        for args in events:
            record_id = args.get(source.id_arg)
            event_owner = args.get(source.owner_arg)
            if record_id is None:
                continue
            if event_owner is not None and str(event_owner).lower() != owner.lower():
                continue
            found.add(int(record_id))
        return found or None
