"""
Fetch and decode policies and service requests.

The contract returns records as positional tuples. Two layouts are in the
wild for each record: the detailed layout, and a legacy layout from older
contract revisions that lacks the ``ipfsHash`` field. decode_policy and
decode_service_request detect the layout and normalize both into the same
model, filling absent fields with empty defaults.
"""

import datetime
import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Union

from web3 import Web3

from healthchain.exceptions import DecodeMismatch, NotFound, RpcError
from healthchain.models import (
    CategoryRights,
    PaymentStatus,
    Policy,
    RecordKind,
    ServiceCategory,
    ServiceRequest,
    empty_rights,
)

logger = logging.getLogger(__name__)

GETTERS = {
    RecordKind.POLICY: "getPolicy",
    RecordKind.SERVICE_REQUEST: "getServiceRequest",
}

# Field order of the policy rights struct: six counts, then six limits
POLICY_RIGHTS_ORDER = (
    ServiceCategory.EXAMINATION,
    ServiceCategory.LABORATORY,
    ServiceCategory.RADIOLOGY,
    ServiceCategory.OUTPATIENT,
    ServiceCategory.ADVANCED_DIAGNOSIS,
    ServiceCategory.PHYSIOTHERAPY,
)

POLICY_MIN_FIELDS = 8
SERVICE_REQUEST_DETAILED_FIELDS = 13
SERVICE_REQUEST_LEGACY_FIELDS = 12

Record = Union[Policy, ServiceRequest]


def format_ether(value) -> str:
    """Wei integer to a plain decimal string in ether"""
    return format(Decimal(Web3.from_wei(int(value or 0), "ether")), "f")


def to_datetime(seconds) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(int(seconds or 0), tz=datetime.timezone.utc)


def _as_sequence(raw, kind: RecordKind) -> Sequence:
    if isinstance(raw, (list, tuple)):
        return raw
    raise DecodeMismatch(f"{kind.label} tuple expected, got {type(raw).__name__}")


def decode_policy_rights(raw_rights) -> List[CategoryRights]:
    """Policy rights struct to six entries in category order."""
    if not isinstance(raw_rights, (list, tuple)):
        return empty_rights()
    values = list(raw_rights) + [0] * (2 * len(POLICY_RIGHTS_ORDER) - len(raw_rights))
    counts = values[:len(POLICY_RIGHTS_ORDER)]
    limits = values[len(POLICY_RIGHTS_ORDER):2 * len(POLICY_RIGHTS_ORDER)]

    by_category = {}
    for position, category in enumerate(POLICY_RIGHTS_ORDER):
        by_category[category] = CategoryRights(
            category=category,
            remaining_count=max(int(counts[position] or 0), 0),
            limit=format_ether(limits[position]),
        )
    return [by_category[category] for category in ServiceCategory]


def decode_policy(raw) -> Policy:
    """
    Decode a getPolicy tuple.

    Detailed layout:
        (id, policyHolder, premium, coverageAmount, startDate, endDate,
         isActive, riskScore, ipfsHash, rights)
    Legacy layout: the same without ipfsHash. Whatever trails riskScore is
    matched by type, so a missing hash or missing rights struct falls back
    to "" and all-zero rights.
    """
    fields = _as_sequence(raw, RecordKind.POLICY)
    if len(fields) < POLICY_MIN_FIELDS:
        raise DecodeMismatch(f"Policy tuple has {len(fields)} fields, expected at least {POLICY_MIN_FIELDS}")

    tail = fields[POLICY_MIN_FIELDS:]
    ipfs_hash = next((value for value in tail if isinstance(value, str)), "")
    raw_rights = next((value for value in tail if isinstance(value, (list, tuple))), None)
    layout = "detailed" if len(tail) >= 2 else "legacy"
    if layout == "legacy":
        logger.debug(f"Decoding policy {fields[0]} with the legacy layout")

    return Policy(
        id=int(fields[0]),
        policy_holder=fields[1],
        premium=format_ether(fields[2]),
        coverage_amount=format_ether(fields[3]),
        start_date=to_datetime(fields[4]),
        end_date=to_datetime(fields[5]),
        is_active=bool(fields[6]),
        risk_score=int(fields[7]),
        ipfs_hash=ipfs_hash or "",
        rights=decode_policy_rights(raw_rights),
    )


def _payment_status(value) -> PaymentStatus:
    try:
        return PaymentStatus(int(value))
    except (TypeError, ValueError):
        logger.debug(f"Unknown payment status {value!r}, treating as pending")
        return PaymentStatus.PENDING


def decode_service_request(raw) -> ServiceRequest:
    """
    Decode a getServiceRequest tuple.

    Detailed layout:
        (id, policyId, patient, hospital, doctor, icdCode, sutCode, amount,
         paymentStatus, requestDate, processDate, ipfsHash, isProcessed)
    Legacy layout: the same without ipfsHash.
    """
    fields = _as_sequence(raw, RecordKind.SERVICE_REQUEST)
    if len(fields) >= SERVICE_REQUEST_DETAILED_FIELDS:
        ipfs_hash, is_processed = fields[11], fields[12]
    elif len(fields) == SERVICE_REQUEST_LEGACY_FIELDS:
        logger.debug(f"Decoding service request {fields[0]} with the legacy layout")
        ipfs_hash, is_processed = "", fields[11]
    else:
        raise DecodeMismatch(
            f"Service request tuple has {len(fields)} fields, expected "
            f"{SERVICE_REQUEST_DETAILED_FIELDS} or {SERVICE_REQUEST_LEGACY_FIELDS}"
        )

    process_date = int(fields[10] or 0)
    return ServiceRequest(
        id=int(fields[0]),
        policy_id=int(fields[1]),
        patient=fields[2],
        hospital=fields[3],
        doctor=fields[4],
        icd_code=fields[5] or "",
        sut_code=fields[6] or "",
        amount=format_ether(fields[7]),
        payment_status=_payment_status(fields[8]),
        request_date=to_datetime(fields[9]),
        process_date=to_datetime(process_date) if process_date else None,
        ipfs_hash=ipfs_hash or "",
        is_processed=bool(is_processed),
    )


DECODERS = {
    RecordKind.POLICY: decode_policy,
    RecordKind.SERVICE_REQUEST: decode_service_request,
}


def owner_of(record: Record) -> str:
    if isinstance(record, Policy):
        return record.policy_holder
    return record.patient


class RecordFetcher:
    """Reads single records from the contract and decodes them."""

    def __init__(self, accessor):
        self.accessor = accessor

    def fetch(self, kind: RecordKind, record_id: int, owner: Optional[str] = None) -> Record:
        """
        Fetch one record.

        Args:
            kind: Policy or service request
            record_id: Contract-assigned id
            owner: When given, a record owned by another account counts as missing

        Raises:
            NotFound: The id is unset, unreadable, or owned by someone else
            DecodeMismatch: The contract returned a tuple of unknown shape
        """
        try:
            raw = self.accessor.call_read(GETTERS[kind], int(record_id), read_only=True)
        except RpcError as e:
            logger.warning(f"Could not read {kind.label.lower()} {record_id}: {e}")
            raise NotFound(kind, record_id) from e

        record = DECODERS[kind](raw)
        # Unset storage slots decode as an all-zero struct
        if record.id == 0:
            raise NotFound(kind, record_id)
        if owner is not None and owner_of(record).lower() != owner.lower():
            raise NotFound(kind, record_id)
        return record

    def fetch_all(self, kind: RecordKind, record_ids: Iterable[int]) -> List[Record]:
        """Fetch every readable record, skipping misses, ordered by id"""
        records = []
        for record_id in sorted(set(int(record_id) for record_id in record_ids)):
            try:
                records.append(self.fetch(kind, record_id))
            except (NotFound, DecodeMismatch) as e:
                logger.warning(f"Skipping {kind.label.lower()} {record_id}: {e}")
        return records
