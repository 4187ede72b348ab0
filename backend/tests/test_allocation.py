"""
Allocation index tests.

Verifies:
- allocate/deallocate idempotence and no redundant writes
- Stale and unknown ids
- staff -> customers derived by scan
"""

import pytest

from opsdesk.services import allocation_service, user_service
from opsdesk.services.concurrency import KeyedLocks
from opsdesk.validation import ValidationError


@pytest.fixture
def people(store):
    alice = user_service.create_user(store, username="alice", password="secret1", user_type="customer")
    carol = user_service.create_user(store, username="carol", password="secret1", user_type="customer")
    bob = user_service.create_user(store, username="bob", password="secret1", user_type="staff")
    dave = user_service.create_user(store, username="dave", password="secret1", user_type="staff")
    return {"alice": alice["id"], "carol": carol["id"], "bob": bob["id"], "dave": dave["id"]}


def count_writes(store):
    writes = []
    sub = store.subscribe("Users", writes.append)
    store.bus.wait_idle(5)
    writes.clear()
    return writes, sub


class TestAllocate:
    def test_allocate_twice_is_idempotent(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        allocation_service.allocate(store, people["alice"], people["bob"])

        assert allocation_service.list_allocated(store, people["alice"]) == [people["bob"]]

    def test_repeat_allocate_performs_no_write(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        writes, sub = count_writes(store)

        result = allocation_service.allocate(store, people["alice"], people["bob"])

        store.bus.wait_idle(5)
        assert result == [people["bob"]]
        assert writes == []
        sub.cancel()

    def test_allocation_order_preserved(self, store, people):
        allocation_service.allocate(store, people["alice"], people["dave"])
        allocation_service.allocate(store, people["alice"], people["bob"])

        assert allocation_service.list_allocated(store, people["alice"]) == [people["dave"], people["bob"]]

    def test_unknown_staff_rejected(self, store, people):
        with pytest.raises(ValidationError):
            allocation_service.allocate(store, people["alice"], "missing-staff")
        assert allocation_service.list_allocated(store, people["alice"]) == []

    def test_customer_cannot_be_allocated_as_staff(self, store, people):
        with pytest.raises(ValidationError):
            allocation_service.allocate(store, people["alice"], people["carol"])

    def test_staff_record_is_not_a_customer(self, store, people):
        with pytest.raises(ValidationError):
            allocation_service.allocate(store, people["bob"], people["dave"])

    def test_unknown_customer_is_noop(self, store, people):
        assert allocation_service.allocate(store, "missing-customer", people["bob"]) == []
        assert store.get("Users/missing-customer") is None

    def test_map_shaped_allocation_is_normalized(self, store, people):
        store.set(f"Users/{people['alice']}/allocatedStaffs", {"0": people["bob"], "1": people["bob"]})

        assert allocation_service.list_allocated(store, people["alice"]) == [people["bob"]]
        assert allocation_service.allocate(store, people["alice"], people["dave"]) == [people["bob"], people["dave"]]

    def test_with_keyed_locks(self, store, people):
        locks = KeyedLocks()
        allocation_service.allocate(store, people["alice"], people["bob"], locks=locks)
        allocation_service.allocate(store, people["alice"], people["dave"], locks=locks)

        assert allocation_service.list_allocated(store, people["alice"]) == [people["bob"], people["dave"]]


class TestDeallocate:
    def test_deallocate_member(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        allocation_service.allocate(store, people["alice"], people["dave"])

        result = allocation_service.deallocate(store, people["alice"], people["bob"])

        assert result == [people["dave"]]
        assert allocation_service.list_allocated(store, people["alice"]) == [people["dave"]]

    def test_deallocate_last_member_leaves_empty_list(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        allocation_service.deallocate(store, people["alice"], people["bob"])

        assert store.get(f"Users/{people['alice']}/allocatedStaffs") == []

    def test_deallocate_non_member_is_noop(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        writes, sub = count_writes(store)

        result = allocation_service.deallocate(store, people["alice"], people["dave"])

        store.bus.wait_idle(5)
        assert result == [people["bob"]]
        assert writes == []
        sub.cancel()

    def test_deallocate_stale_staff_id(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        user_service.delete_user(store, people["bob"])

        assert allocation_service.deallocate(store, people["alice"], people["bob"]) == []


class TestDerivedDirection:
    def test_customers_for_staff(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        allocation_service.allocate(store, people["carol"], people["bob"])
        allocation_service.allocate(store, people["carol"], people["dave"])

        assert sorted(allocation_service.list_customers_for(store, people["bob"])) == sorted(
            [people["alice"], people["carol"]]
        )
        assert allocation_service.list_customers_for(store, people["dave"]) == [people["carol"]]

    def test_staff_serialization_carries_allocated_customers(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])

        bob = user_service.get_user(store, people["bob"])

        assert bob["allocatedCustomers"] == [people["alice"]]

    def test_allocation_details(self, store, people):
        allocation_service.allocate(store, people["alice"], people["bob"])
        store.set(f"Users/{people['alice']}/allocatedStaffs", [people["bob"], "ghost"])

        details = allocation_service.allocation_details(store, people["alice"])

        assert details["username"] == "alice"
        assert details["allocated"] == [
            {"id": people["bob"], "username": "bob"},
            {"id": "ghost", "username": "Unknown Staff"},
        ]
        assert details["unallocated"] == [{"id": people["dave"], "username": "dave"}]

    def test_allocation_details_unknown_customer(self, store, people):
        assert allocation_service.allocation_details(store, "missing") is None
        assert allocation_service.allocation_details(store, people["bob"]) is None
