"""
Policy and service-request operations built on the contract accessor.

Write operations are single attempts: a wallet rejection surfaces as
UserRejected, any other failure as RpcError carrying the node's message.
Nothing is cached unless the transaction was confirmed.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from web3 import Web3

from healthchain.exceptions import RpcError
from healthchain.models import NetworkInfo, RecordKind, ServiceCategory, WriteResult

logger = logging.getLogger(__name__)

CREATE_POLICY_SHORT = "createPolicy(address,uint256,uint256)"
CREATE_POLICY_WITH_HASH = "createPolicy(address,uint256,uint256,string)"

# (highest risk score in tier, premium in ether)
PREMIUM_TIERS = (
    (20, "0.001"),
    (50, "0.0025"),
    (80, "0.004"),
    (100, "0.007"),
)


def calculate_premium(risk_score) -> str:
    """
    Premium in ether for a risk score between 1 and 100.

    Raises:
        ValueError: The score is not a number in range
    """
    try:
        score = int(risk_score)
    except (TypeError, ValueError):
        raise ValueError("Risk score must be a number between 1 and 100")
    if score < 1 or score > 100:
        raise ValueError("Risk score must be a number between 1 and 100")
    for ceiling, premium in PREMIUM_TIERS:
        if score <= ceiling:
            return premium
    return PREMIUM_TIERS[-1][1]


def parse_ether(amount) -> int:
    """Decimal ether amount (string or number) to wei"""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise ValueError(f"Amount must not be negative: {amount!r}")
    return int(Web3.to_wei(value, "ether"))


def _first_event_arg(events, name: str) -> Optional[int]:
    for args in events:
        if args.get(name) is not None:
            return int(args[name])
    return None


def _write_result(tx_hash: str, receipt, record_id: Optional[int] = None) -> WriteResult:
    return WriteResult(
        transaction_hash=tx_hash,
        record_id=record_id,
        block_number=receipt.get("blockNumber"),
        gas_used=receipt.get("gasUsed"),
    )


class PolicyService:
    """Creates and moves policies and service requests through their lifecycle."""

    def __init__(self, accessor, resolver):
        self.accessor = accessor
        self.resolver = resolver

    def get_network_info(self) -> NetworkInfo:
        return self.accessor.network_info()

    def create_policy(self, policy_holder: str, risk_score: int, duration_days: int,
                      ipfs_hash: Optional[str] = None) -> WriteResult:
        """
        Create a policy for ``policy_holder`` and cache its id.

        Uses the 3-argument createPolicy when the contract has it, the
        variant taking an IPFS hash otherwise.
        """
        # Rejects scores outside 1..100
        calculate_premium(risk_score)
        if self.accessor.has_function(CREATE_POLICY_SHORT):
            tx_hash, receipt = self.accessor.call_write(
                CREATE_POLICY_SHORT, policy_holder, int(risk_score), int(duration_days)
            )
        else:
            tx_hash, receipt = self.accessor.call_write(
                CREATE_POLICY_WITH_HASH, policy_holder, int(risk_score), int(duration_days), ipfs_hash or ""
            )

        try:
            policy_id = _first_event_arg(self.accessor.events_from_receipt("PolicyCreated", receipt), "policyId")
        except RpcError as e:
            logger.warning(f"Could not read PolicyCreated from {tx_hash}: {e}")
            policy_id = None

        if policy_id is not None:
            self.resolver.remember(policy_holder, RecordKind.POLICY, policy_id)
        logger.info(f"Policy creation result: tx={tx_hash} policy_id={policy_id}")
        return _write_result(tx_hash, receipt, policy_id)

    def pause_policy(self, policy_id: int) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("pausePolicy", int(policy_id))
        return _write_result(tx_hash, receipt, int(policy_id))

    def unpause_policy(self, policy_id: int) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("unpausePolicy", int(policy_id))
        return _write_result(tx_hash, receipt, int(policy_id))

    def request_service(self, policy_id: int, patient: str, doctor: str, icd_code: str,
                        sut_code: str, amount) -> WriteResult:
        """File a service request; ``amount`` is in ether."""
        amount_wei = parse_ether(amount)
        tx_hash, receipt = self.accessor.call_write(
            "requestService", int(policy_id), patient, doctor, icd_code, sut_code, amount_wei
        )

        request_id = None
        try:
            request_id = _first_event_arg(
                self.accessor.events_from_receipt("ServiceRequested", receipt), "requestId"
            )
            if request_id is None:
                # The counter holds the id of the latest request
                request_id = int(self.accessor.call_read("serviceRequestCounter"))
        except RpcError as e:
            logger.warning(f"Could not determine the id of request {tx_hash}: {e}")

        if request_id is not None:
            self.resolver.remember(patient, RecordKind.SERVICE_REQUEST, request_id)
        return _write_result(tx_hash, receipt, request_id)

    def process_service_request(self, request_id: int, ipfs_hash: str) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("processServiceRequest", int(request_id), ipfs_hash)
        return _write_result(tx_hash, receipt, int(request_id))

    def pay_for_service(self, request_id: int) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("payForService", int(request_id))
        return _write_result(tx_hash, receipt, int(request_id))

    def is_service_covered(self, patient: str, category: ServiceCategory, amount) -> bool:
        return bool(self.accessor.call_read(
            "isServiceCoveredView", patient, int(category), parse_ether(amount)
        ))
