"""
Shared fakes and tuple builders for the healthchain tests.

FakeAccessor stands in for ContractAccessor: each contract method is
configured with a value, a callable, or an exception instance, and every
RPC-like call is recorded in ``calls``. Reads sent to the read-only
endpoint are also listed in ``read_only_calls``.
"""

from healthchain.exceptions import RpcError
from healthchain.models import NetworkInfo

WEI = 10 ** 18

# Test accounts
PATIENT = "0xEDB64f85F1fC9357EcA100C2970f7F84a5faAD4A"
DOCTOR = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
HOSPITAL = "0x28B317594b44483D24EE8AdCb13A1b148497C6ba"
OTHER = "0x3Fa2c09c14453c7acaC39E3fd57e0c6F1da3f5ce"

DOCTOR_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

CHAIN_ID = 84532
START = 1735689600  # 2025-01-01T00:00:00Z
END = START + 365 * 86400


def rights_tuple(counts=(5, 5, 3, 5, 2, 5), limits=(1000, 1000, 1000, 1000, 5000, 1000)):
    """
    Policy rights struct in contract field order.

    ``counts`` and ``limits`` are given in ServiceCategory order (outpatient,
    examination, laboratory, radiology, advanced diagnosis, physiotherapy)
    and rearranged into the struct order (examination, laboratory,
    radiology, outpatient, advanced diagnosis, physiotherapy).
    """
    struct_order = (1, 2, 3, 0, 4, 5)
    return tuple(counts[i] for i in struct_order) + tuple(limits[i] * WEI for i in struct_order)


def policy_tuple(policy_id, holder=PATIENT, active=True, risk_score=42, ipfs_hash="QmPolicyDoc",
                 rights=None, legacy=False):
    fields = [
        policy_id,
        holder,
        WEI // 1000,       # premium 0.001
        10 * WEI,          # coverage 10
        START,
        END,
        active,
        risk_score,
    ]
    if not legacy:
        fields.append(ipfs_hash)
    fields.append(rights if rights is not None else rights_tuple())
    return tuple(fields)


def request_tuple(request_id, patient=PATIENT, policy_id=1, status=0, process_date=0,
                  ipfs_hash="QmReport", processed=False, legacy=False):
    fields = [
        request_id,
        policy_id,
        patient,
        HOSPITAL,
        DOCTOR,
        "J45.0",
        "520.030",
        WEI // 4,          # amount 0.25
        status,
        START,
        process_date,
    ]
    if not legacy:
        fields.append(ipfs_hash)
    fields.append(processed)
    return tuple(fields)


EMPTY_POLICY = policy_tuple(0, holder="0x0000000000000000000000000000000000000000", active=False,
                            risk_score=0, ipfs_hash="", rights=(0,) * 12)


class FakeAccessor:
    """In-memory ContractAccessor double"""

    def __init__(self, chain_id=CHAIN_ID):
        self._chain_id = chain_id
        self.reads = {}
        self.events = {}
        self.receipt_events = {}
        self.functions = set()
        self.calls = []
        self.read_only_calls = []
        self.writes = []
        self.write_error = None
        self.wallet = object()
        self.receipt = {"status": 1, "blockNumber": 1234, "gasUsed": 87000}

    def chain_id(self):
        self.calls.append(("chain_id", ()))
        if isinstance(self._chain_id, Exception):
            raise self._chain_id
        return self._chain_id

    def network_info(self):
        return NetworkInfo(chain_id=self.chain_id(), block_number=1234)

    def has_function(self, signature):
        return signature in self.functions

    def _respond(self, handler, method, args):
        if handler is None:
            raise RpcError(f"{method} is not available", method=method)
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(*args)
        return handler

    def call_read(self, method, *args, read_only=False):
        self.calls.append((method, args))
        if read_only:
            self.read_only_calls.append(method)
        return self._respond(self.reads.get(method), method, args)

    def query_events(self, event_name, argument_filters=None, from_block=0, to_block="latest"):
        self.calls.append((event_name, (argument_filters,)))
        return self._respond(self.events.get(event_name), event_name, ())

    def call_write(self, method, *args, value=0):
        self.writes.append((method, args))
        if self.write_error is not None:
            raise self.write_error
        return "0x" + "ab" * 32, self.receipt

    def events_from_receipt(self, event_name, receipt):
        handler = self.receipt_events.get(event_name, [])
        if isinstance(handler, Exception):
            raise handler
        return handler

    def methods_called(self):
        return [method for method, _ in self.calls]


def policy_store(policies):
    """getPolicy handler over ``{id: tuple}``, answering unknown ids with an empty struct"""
    def get_policy(policy_id):
        return policies.get(policy_id, EMPTY_POLICY)
    return get_policy


class FakeDocuments:
    def __init__(self, cid="QmUploadedReport"):
        self.cid = cid
        self.uploads = []

    def upload_base64(self, encoded):
        self.uploads.append(encoded)
        return self.cid
