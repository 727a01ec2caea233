import pytest

from healthchain.exceptions import RpcError
from healthchain.fetcher import RecordFetcher
from healthchain.models import ServiceCategory
from healthchain.resolver import RecordResolver
from healthchain.rights import RightsAggregator, build_snapshot

from helpers import CHAIN_ID, PATIENT, WEI, policy_store, policy_tuple, rights_tuple


@pytest.fixture
def aggregator(accessor, cache):
    fetcher = RecordFetcher(accessor)
    return RightsAggregator(accessor, RecordResolver(accessor, fetcher, cache, chain_id=CHAIN_ID), fetcher)


def triples(snapshot):
    return [(entry.remaining_count, entry.used_amount, entry.limit) for entry in snapshot]


def test_build_snapshot_pads_to_six():
    snapshot = build_snapshot([1, 2], ["0.5"], [])

    assert [entry.category for entry in snapshot] == list(ServiceCategory)
    assert triples(snapshot)[:2] == [(1, "0.5", "0"), (2, "0", "0")]
    assert triples(snapshot)[5] == (0, "0", "0")


def test_aggregate_rights(aggregator, accessor):
    accessor.reads["getPatientRights"] = (
        [4, 5, 3, 5, 2, 5],
        [WEI // 2, 0, 0, 0, 0, 0],
        [1000 * WEI] * 4 + [5000 * WEI, 1000 * WEI],
    )

    snapshot = aggregator.get_rights(PATIENT)

    assert triples(snapshot)[0] == (4, "0.5", "1000")
    assert triples(snapshot)[4] == (2, "0", "5000")
    assert accessor.methods_called() == ["getPatientRights"]


def test_per_category_fallback_uses_active_policy_limits(aggregator, accessor):
    counts = [5, 5, 3, 5, 2, 5]
    accessor.reads["getPatientRights"] = RpcError("function selector was not recognized")
    accessor.reads["patientRights"] = lambda owner, index: counts[index]
    accessor.reads["patientUsedAmounts"] = 0
    accessor.reads["getUserPolicies"] = [1, 2]
    accessor.reads["getPolicy"] = policy_store({
        1: policy_tuple(1, active=False, rights=rights_tuple(limits=(1, 1, 1, 1, 1, 1))),
        2: policy_tuple(2),
    })

    snapshot = aggregator.get_rights(PATIENT)

    assert [entry.category for entry in snapshot] == list(ServiceCategory)
    assert triples(snapshot) == [
        (5, "0", "1000"),
        (5, "0", "1000"),
        (3, "0", "1000"),
        (5, "0", "1000"),
        (2, "0", "5000"),
        (5, "0", "1000"),
    ]


def test_inactive_policy_limits_when_none_active(aggregator, accessor):
    accessor.reads["getUserPolicies"] = [4]
    accessor.reads["getPolicy"] = policy_store({
        4: policy_tuple(4, active=False, rights=rights_tuple(limits=(7, 7, 7, 7, 7, 7))),
    })

    assert aggregator.limits_policy(PATIENT).id == 4
    assert [entry.limit for entry in aggregator.get_rights(PATIENT)] == ["7"] * 6


def test_everything_failing_yields_zeros(aggregator, accessor):
    snapshot = aggregator.get_rights(PATIENT)

    assert len(snapshot) == 6
    assert triples(snapshot) == [(0, "0", "0")] * 6


def test_malformed_aggregate_falls_back_to_per_category(aggregator, accessor):
    accessor.reads["getPatientRights"] = (["four"] * 6, [0] * 6, [WEI] * 6)
    accessor.reads["patientRights"] = 1
    accessor.reads["patientUsedAmounts"] = WEI

    snapshot = aggregator.get_rights(PATIENT)

    assert triples(snapshot) == [(1, "1", "0")] * 6
    assert "patientRights" in accessor.methods_called()


def test_aggregate_with_missing_array_falls_back(aggregator, accessor):
    accessor.reads["getPatientRights"] = ([4] * 6, [0] * 6)
    accessor.reads["patientRights"] = 2
    accessor.reads["patientUsedAmounts"] = 0

    assert [entry.remaining_count for entry in aggregator.get_rights(PATIENT)] == [2] * 6


def test_unreadable_per_category_values_become_zero(aggregator, accessor):
    accessor.reads["patientRights"] = lambda owner, index: "n/a" if index == 1 else 3
    accessor.reads["patientUsedAmounts"] = lambda owner, index: None if index == 2 else WEI // 4

    snapshot = aggregator.get_rights(PATIENT)

    assert [entry.remaining_count for entry in snapshot] == [3, 0, 3, 3, 3, 3]
    assert [entry.used_amount for entry in snapshot] == ["0.25", "0.25", "0", "0.25", "0.25", "0.25"]


class TestDetailedRights:
    def test_entries_placed_by_service_type(self, aggregator, accessor):
        accessor.reads["getPatientRightsDetailed"] = (
            [3, 0, 9],
            [2, 4, 1],
            [WEI // 2, 0, 0],
            [1000 * WEI, 2000 * WEI, WEI],
        )

        snapshot = aggregator.get_rights_detailed(PATIENT)

        assert [entry.category for entry in snapshot] == list(ServiceCategory)
        assert triples(snapshot) == [
            (4, "0", "2000"),
            (0, "0", "0"),
            (0, "0", "0"),
            (2, "0.5", "1000"),
            (0, "0", "0"),
            (0, "0", "0"),
        ]

    def test_unavailable_falls_back_to_aggregate(self, aggregator, accessor):
        accessor.reads["getPatientRightsDetailed"] = RpcError("function selector was not recognized")
        accessor.reads["getPatientRights"] = ([1] * 6, [0] * 6, [WEI] * 6)

        assert triples(aggregator.get_rights_detailed(PATIENT)) == [(1, "0", "1")] * 6

    def test_short_arrays_fall_back(self, aggregator, accessor):
        accessor.reads["getPatientRightsDetailed"] = ([0, 1], [5], [0], [0])
        accessor.reads["getPatientRights"] = ([2] * 6, [0] * 6, [0] * 6)

        assert [entry.remaining_count for entry in aggregator.get_rights_detailed(PATIENT)] == [2] * 6
