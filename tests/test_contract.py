"""
Tests for the HealthPolicy contract accessor.

No node is contacted: the contract bindings are real web3 objects, and the
calls that would reach the network are replaced with mocks.
"""

import json
import os
import tempfile
import unittest
from unittest.mock import MagicMock, PropertyMock

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from healthchain.contract import ContractAccessor, function_signature, load_abi
from healthchain.exceptions import RpcError, UserRejected

from helpers import DOCTOR, PATIENT

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def make_accessor(wallet=None):
    w3 = Web3(Web3.HTTPProvider("http://127.0.0.1:8545"))
    return ContractAccessor(w3, CONTRACT_ADDRESS, load_abi(), wallet=wallet, tx_timeout=5)


class TestAbi(unittest.TestCase):
    def test_load_artifact_and_bare_list(self):
        abi = load_abi()
        self.assertTrue(any(entry.get("name") == "getPolicy" for entry in abi))

        with self.subTest("bare list"):
            with tempfile.TemporaryDirectory() as directory:
                path = os.path.join(directory, "abi.json")
                with open(path, "w") as f:
                    json.dump(abi, f)
                self.assertEqual(load_abi(path), abi)

    def test_function_signature(self):
        entry = {"type": "function", "name": "isServiceCoveredView",
                 "inputs": [{"type": "address"}, {"type": "uint8"}, {"type": "uint256"}]}
        self.assertEqual(function_signature(entry), "isServiceCoveredView(address,uint8,uint256)")

    def test_has_function(self):
        accessor = make_accessor()
        self.assertTrue(accessor.has_function("createPolicy(address,uint256,uint256,string)"))
        self.assertFalse(accessor.has_function("createPolicy(address,uint256,uint256)"))
        self.assertTrue(accessor.has_function("getPatientRights(address)"))


class TestReads(unittest.TestCase):
    def setUp(self):
        self.accessor = make_accessor()

    def test_read_only_binding(self):
        self.accessor.read_contract = MagicMock()
        function = self.accessor.read_contract.functions.__getitem__.return_value
        function.return_value.call.return_value = [1, 2]

        self.assertEqual(self.accessor.call_read("getUserPolicies", PATIENT, read_only=True), [1, 2])
        self.accessor.read_contract.functions.__getitem__.assert_called_with("getUserPolicies")
        function.assert_called_with(PATIENT)

    def test_failures_become_rpc_errors(self):
        self.accessor.contract = MagicMock()
        function = self.accessor.contract.functions.__getitem__.return_value
        function.return_value.call.side_effect = ValueError("execution reverted")

        with self.assertRaises(RpcError) as ctx:
            self.accessor.call_read("getPolicy", 1)
        self.assertEqual(ctx.exception.method, "getPolicy")
        self.assertIn("execution reverted", str(ctx.exception))

    def test_unknown_function(self):
        with self.assertRaises(RpcError):
            self.accessor.call_read("doesNotExist")

    def test_chain_id_is_memoized(self):
        self.accessor.w3 = MagicMock()
        chain_id = PropertyMock(return_value=84532)
        type(self.accessor.w3.eth).chain_id = chain_id

        self.assertEqual(self.accessor.chain_id(), 84532)
        self.assertEqual(self.accessor.chain_id(), 84532)
        self.assertEqual(chain_id.call_count, 1)

    def test_chain_id_failure(self):
        self.accessor.w3 = MagicMock()
        type(self.accessor.w3.eth).chain_id = PropertyMock(side_effect=ConnectionError("refused"))

        with self.assertRaises(RpcError):
            self.accessor.chain_id()

    def test_query_events(self):
        self.accessor.read_contract = MagicMock()
        event = self.accessor.read_contract.events.__getitem__.return_value.return_value
        event.get_logs.return_value = [{"args": {"policyId": 7, "policyHolder": PATIENT}}]

        events = self.accessor.query_events("PolicyCreated", argument_filters={"policyHolder": PATIENT})

        self.assertEqual(events, [{"policyId": 7, "policyHolder": PATIENT}])
        event.get_logs.assert_called_once_with(
            argument_filters={"policyHolder": PATIENT}, from_block=0, to_block="latest"
        )

    def test_query_events_failure(self):
        self.accessor.read_contract = MagicMock()
        event = self.accessor.read_contract.events.__getitem__.return_value.return_value
        event.get_logs.side_effect = ValueError("query returned more than 10000 results")

        with self.assertRaises(RpcError):
            self.accessor.query_events("PolicyCreated")

    def test_events_from_receipt(self):
        holder = Web3.to_checksum_address(PATIENT)
        log = {
            "address": CONTRACT_ADDRESS,
            "topics": [
                Web3.keccak(text="PolicyCreated(uint256,address,uint256,uint256)"),
                HexBytes(encode(["uint256"], [4])),
                HexBytes(encode(["address"], [holder])),
            ],
            "data": HexBytes(encode(["uint256", "uint256"], [10 ** 15, 15])),
            "blockNumber": 5,
            "blockHash": HexBytes(b"\x34" * 32),
            "transactionHash": HexBytes(b"\x12" * 32),
            "transactionIndex": 0,
            "logIndex": 0,
            "removed": False,
        }

        events = self.accessor.events_from_receipt("PolicyCreated", {"status": 1, "logs": [log]})

        self.assertEqual(events, [{"policyId": 4, "policyHolder": holder, "premium": 10 ** 15, "riskScore": 15}])
        self.assertEqual(self.accessor.events_from_receipt("ServiceRequested", {"status": 1, "logs": [log]}), [])


class TestWrites(unittest.TestCase):
    def setUp(self):
        self.wallet = MagicMock()
        self.wallet.address = DOCTOR
        self.wallet.send_transaction.return_value = b"\x12" * 32
        self.accessor = make_accessor(wallet=self.wallet)
        self.accessor.contract = MagicMock()
        self.function = self.accessor.contract.functions.__getitem__.return_value.return_value
        self.function.build_transaction.return_value = {"to": CONTRACT_ADDRESS, "data": "0x"}
        self.accessor.w3 = MagicMock()
        self.accessor.w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1, "blockNumber": 10, "gasUsed": 54321,
        }

    def test_write(self):
        tx_hash, receipt = self.accessor.call_write("pausePolicy", 3)

        self.assertEqual(tx_hash, "0x" + "12" * 32)
        self.assertEqual(receipt["blockNumber"], 10)
        self.function.build_transaction.assert_called_once_with({"from": DOCTOR, "value": 0})
        self.wallet.send_transaction.assert_called_once_with(
            self.accessor.w3, {"to": CONTRACT_ADDRESS, "data": "0x"}
        )
        self.accessor.w3.eth.wait_for_transaction_receipt.assert_called_once_with(b"\x12" * 32, timeout=5)

    def test_without_wallet(self):
        self.accessor.wallet = None
        with self.assertRaises(RpcError):
            self.accessor.call_write("pausePolicy", 3)

    def test_rejection_propagates(self):
        self.wallet.send_transaction.side_effect = UserRejected("User rejected the request.")

        with self.assertRaises(UserRejected):
            self.accessor.call_write("pausePolicy", 3)
        self.accessor.w3.eth.wait_for_transaction_receipt.assert_not_called()

    def test_estimate_failure_keeps_node_message(self):
        self.function.build_transaction.side_effect = ValueError(
            {"code": 3, "message": "execution reverted: Policy is not active"}
        )

        with self.assertRaises(RpcError) as ctx:
            self.accessor.call_write("payForService", 9)
        self.assertEqual(ctx.exception.code, 3)
        self.assertIn("Policy is not active", str(ctx.exception))

    def test_reverted(self):
        self.accessor.w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 10}

        with self.assertRaises(RpcError) as ctx:
            self.accessor.call_write("pausePolicy", 3)
        self.assertIn("reverted", str(ctx.exception))

    def test_receipt_timeout(self):
        self.accessor.w3.eth.wait_for_transaction_receipt.side_effect = TimeoutError("not mined")

        with self.assertRaises(RpcError):
            self.accessor.call_write("pausePolicy", 3)
