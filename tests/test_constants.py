from belt_indexer.constants import (
    BELT_EXECUTORS,
    BELT_FACTORIES,
    BELT_IMPLEMENTATIONS,
    ENTRY_POINTS,
    V0_7,
    V0_8,
    V0_9,
    get_entry_point_version,
    is_belt_executor,
    is_belt_factory,
)


def test_allow_lists_are_lowercase():
    for address in BELT_FACTORIES | BELT_EXECUTORS | BELT_IMPLEMENTATIONS:
        assert address == address.lower()
        assert len(address) == 42


def test_helpers_ignore_case():
    factory = next(iter(BELT_FACTORIES))
    executor = next(iter(BELT_EXECUTORS))
    assert is_belt_factory(factory.upper().replace("0X", "0x"))
    assert is_belt_executor(executor.upper().replace("0X", "0x"))
    assert not is_belt_factory(executor)


def test_entry_point_version_lookup():
    assert get_entry_point_version(ENTRY_POINTS[V0_7].lower()) == V0_7
    assert get_entry_point_version(ENTRY_POINTS[V0_8]) == V0_8
    assert get_entry_point_version(ENTRY_POINTS[V0_9].upper().replace("0X", "0x")) == V0_9
    assert get_entry_point_version("0x" + "00" * 20) is None
