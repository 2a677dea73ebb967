from sqlalchemy.exc import OperationalError

from belt_indexer.constants import ZERO_ADDRESS
from belt_indexer.services.classifier import is_ecosystem_member, is_qualifying_factory
from belt_indexer.services.store import LookupResult

from conftest import ACCOUNT_A, BELT_EXECUTOR, BELT_FACTORY_V07, BELT_IMPLEMENTATION, OUTSIDER


class LookupSpy:
    def __init__(self, result: LookupResult):
        self.result = result
        self.calls = []

    def __call__(self, address: str) -> LookupResult:
        self.calls.append(address)
        return self.result


def test_executor_sender_is_member_without_lookup():
    lookup = LookupSpy(LookupResult.not_found())
    assert is_ecosystem_member(BELT_EXECUTOR, ZERO_ADDRESS, lookup)
    assert lookup.calls == []


def test_implementation_sender_is_member():
    assert is_ecosystem_member(
        BELT_IMPLEMENTATION, ZERO_ADDRESS, LookupSpy(LookupResult.not_found())
    )


def test_executor_paymaster_makes_outsider_member():
    assert is_ecosystem_member(OUTSIDER, BELT_EXECUTOR, LookupSpy(LookupResult.not_found()))


def test_tracked_account_is_member():
    lookup = LookupSpy(LookupResult.found(object()))
    assert is_ecosystem_member(ACCOUNT_A, ZERO_ADDRESS, lookup)
    assert lookup.calls == [ACCOUNT_A]


def test_untracked_outsider_is_not_member():
    assert not is_ecosystem_member(OUTSIDER, ZERO_ADDRESS, LookupSpy(LookupResult.not_found()))


def test_membership_is_case_insensitive():
    lookup = LookupSpy(LookupResult.found(object()))
    assert is_ecosystem_member(BELT_EXECUTOR.upper().replace("0X", "0x"), ZERO_ADDRESS, lookup)
    assert is_ecosystem_member(OUTSIDER, BELT_EXECUTOR.upper().replace("0X", "0x"), lookup)

    is_ecosystem_member(ACCOUNT_A.upper().replace("0X", "0x"), ZERO_ADDRESS, lookup)
    assert lookup.calls == [ACCOUNT_A]


def test_failed_lookup_counts_as_not_member(caplog):
    lookup = LookupSpy(LookupResult.failed(OperationalError("SELECT", {}, Exception("db down"))))
    with caplog.at_level("WARNING"):
        assert not is_ecosystem_member(ACCOUNT_A, ZERO_ADDRESS, lookup)
    assert "treating as not tracked" in caplog.text


def test_failed_lookup_does_not_block_static_rules():
    lookup = LookupSpy(LookupResult.failed(RuntimeError("unreachable")))
    assert is_ecosystem_member(OUTSIDER, BELT_EXECUTOR, lookup)


def test_qualifying_factory():
    assert is_qualifying_factory(BELT_FACTORY_V07)
    assert is_qualifying_factory(BELT_FACTORY_V07.upper().replace("0X", "0x"))
    assert not is_qualifying_factory(OUTSIDER)
    assert not is_qualifying_factory(ZERO_ADDRESS)
