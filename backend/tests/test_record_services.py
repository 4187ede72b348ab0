"""
Record operation tests for users, workflows, questions and orders.
"""

import pytest

from opsdesk.services import (
    allocation_service,
    order_service,
    question_service,
    user_service,
    workflow_service,
)
from opsdesk.validation import ConflictError, ValidationError

from conftest import T0


@pytest.fixture
def alice(store):
    return user_service.create_user(store, username="alice", password="secret1", user_type="customer")


@pytest.fixture
def bob(store):
    return user_service.create_user(store, username="bob", password="secret1", user_type="staff")


class TestUsers:
    def test_customer_starts_without_staff(self, alice):
        assert alice["userType"] == "customer"
        assert alice["allocatedStaffs"] == []
        assert len(alice["id"]) == 20

    def test_duplicate_username_rejected(self, store, alice):
        with pytest.raises(ConflictError, match="Username already exists"):
            user_service.create_user(store, username="alice", password="another1", user_type="staff")
        assert len(user_service.list_users(store)) == 1

    @pytest.mark.parametrize(
        "username,password,user_type",
        [
            ("", "secret1", "customer"),
            (None, "secret1", "customer"),
            ("erin", "", "customer"),
            ("erin", "short", "customer"),
            ("erin", "secret1", "admin"),
        ],
    )
    def test_invalid_input(self, store, username, password, user_type):
        with pytest.raises(ValidationError):
            user_service.create_user(store, username=username, password=password, user_type=user_type)
        assert user_service.list_users(store) == []

    def test_update_keeps_type_and_allocation(self, store, alice, bob):
        allocation_service.allocate(store, alice["id"], bob["id"])

        updated = user_service.update_user(store, alice["id"], username="alicia", allocated_machine="M-7")

        assert updated["username"] == "alicia"
        assert updated["allocatedMachine"] == "M-7"
        assert updated["userType"] == "customer"
        assert updated["allocatedStaffs"] == [bob["id"]]

    def test_update_to_taken_username(self, store, alice, bob):
        with pytest.raises(ConflictError):
            user_service.update_user(store, alice["id"], username="bob")

    def test_update_same_username_allowed(self, store, alice):
        assert user_service.update_user(store, alice["id"], username="alice")["username"] == "alice"

    def test_update_missing_user(self, store):
        assert user_service.update_user(store, "missing", username="x") is None

    def test_delete_user(self, store, alice):
        assert user_service.delete_user(store, alice["id"]) is True
        assert user_service.delete_user(store, alice["id"]) is False
        assert user_service.get_user(store, alice["id"]) is None

    def test_list_by_type(self, store, alice, bob):
        assert [u["username"] for u in user_service.list_users(store, "staff")] == ["bob"]
        with pytest.raises(ValidationError):
            user_service.list_users(store, "admin")


class TestWorkflows:
    def test_create_and_update(self, store, alice):
        workflow = workflow_service.create_workflow(
            store, customer_id=alice["id"], screen_title="Color", options=["Red", " Blue "]
        )
        assert workflow["options"] == ["Red", "Blue"]

        updated = workflow_service.update_workflow(store, workflow["id"], screen_title="Colour")
        assert updated["screenTitle"] == "Colour"
        assert updated["options"] == ["Red", "Blue"]
        assert updated["customerId"] == alice["id"]

    @pytest.mark.parametrize(
        "title,options",
        [("", ["Red"]), ("Color", []), ("Color", ["Red", ""]), ("Color", None), ("Color", "Red")],
    )
    def test_invalid_workflow(self, store, alice, title, options):
        with pytest.raises(ValidationError):
            workflow_service.create_workflow(store, customer_id=alice["id"], screen_title=title, options=options)

    def test_unknown_customer(self, store, bob):
        with pytest.raises(ValidationError):
            workflow_service.create_workflow(store, customer_id=bob["id"], screen_title="Color", options=["Red"])

    def test_list_and_delete(self, store, alice):
        first = workflow_service.create_workflow(store, customer_id=alice["id"], screen_title="A", options=["1"])
        workflow_service.create_workflow(store, customer_id=alice["id"], screen_title="B", options=["2"])

        assert [w["screenTitle"] for w in workflow_service.list_workflows_for(store, alice["id"])] == ["A", "B"]
        assert workflow_service.delete_workflow(store, first["id"]) is True
        assert workflow_service.delete_workflow(store, first["id"]) is False
        assert workflow_service.update_workflow(store, first["id"], screen_title="X") is None


class TestQuestions:
    def test_create(self, store, alice):
        question = question_service.create_question(
            store, customer_id=alice["id"], question="Ready?", options=["Yes", "No"], correct_answer="Yes"
        )
        assert question_service.get_question(store, question["id"])["correctAnswer"] == "Yes"

    @pytest.mark.parametrize(
        "text,options,answer",
        [
            ("", ["Yes", "No"], "Yes"),
            ("Ready?", ["Yes"], "Yes"),
            ("Ready?", ["Yes", ""], "Yes"),
            ("Ready?", ["Yes", "No"], ""),
            ("Ready?", ["Yes", "No"], "Maybe"),
        ],
    )
    def test_invalid_question(self, store, alice, text, options, answer):
        with pytest.raises(ValidationError):
            question_service.create_question(
                store, customer_id=alice["id"], question=text, options=options, correct_answer=answer
            )

    def test_update_options_must_still_contain_answer(self, store, alice):
        question = question_service.create_question(
            store, customer_id=alice["id"], question="Ready?", options=["Yes", "No"], correct_answer="Yes"
        )
        with pytest.raises(ValidationError):
            question_service.update_question(store, question["id"], options=["No", "Later"])

        updated = question_service.update_question(
            store, question["id"], options=["No", "Later"], correct_answer="Later"
        )
        assert updated["options"] == ["No", "Later"]

    def test_delete(self, store, alice):
        question = question_service.create_question(
            store, customer_id=alice["id"], question="Ready?", options=["Yes", "No"], correct_answer="No"
        )
        assert question_service.delete_question(store, question["id"]) is True
        assert question_service.list_questions_for(store, alice["id"]) == []


class TestOrders:
    def test_create_snapshots_workflows(self, store, alice):
        workflow = workflow_service.create_workflow(store, customer_id=alice["id"], screen_title="Color", options=["Red"])
        order = order_service.create_order(store, customer_id=alice["id"], selected_options={"Color": "Red"}, now=T0)

        workflow_service.update_workflow(store, workflow["id"], options=["Green"])

        stored = order_service.get_order(store, order["id"])
        assert stored["status"] == "Pending"
        assert stored["createdAt"] == T0
        assert stored["workflows"][0]["options"] == ["Red"]
        assert stored["selectedOptions"] == {"Color": "Red"}

    def test_staff_must_be_allocated(self, store, alice, bob):
        with pytest.raises(ValidationError):
            order_service.create_order(store, customer_id=alice["id"], staff_id=bob["id"])

        allocation_service.allocate(store, alice["id"], bob["id"])
        order = order_service.create_order(store, customer_id=alice["id"], staff_id=bob["id"])
        assert order["staffName"] == "bob"

    def test_unknown_customer(self, store):
        with pytest.raises(ValidationError):
            order_service.create_order(store, customer_id="missing")

    def test_bad_selected_options(self, store, alice):
        with pytest.raises(ValidationError):
            order_service.create_order(store, customer_id=alice["id"], selected_options={"Color": 3})

    def test_list_sorted_by_created(self, store, alice):
        late = order_service.create_order(store, customer_id=alice["id"], now=T0 + 10)
        early = order_service.create_order(store, customer_id=alice["id"], now=T0)

        assert [o["id"] for o in order_service.list_orders(store)] == [early["id"], late["id"]]
        assert order_service.list_orders(store, "Accepted") == []
        assert len(order_service.list_orders_for_customer(store, alice["id"])) == 2

    def test_bulk_delete(self, store, alice):
        ids = [order_service.create_order(store, customer_id=alice["id"])["id"] for _ in range(3)]

        deleted = order_service.delete_orders(store, [ids[0], ids[1], "missing", ids[0]])

        assert deleted == [ids[0], ids[1]]
        assert [o["id"] for o in order_service.list_orders(store)] == [ids[2]]

    def test_delete_all_and_single(self, store, alice):
        first = order_service.create_order(store, customer_id=alice["id"])
        order_service.create_order(store, customer_id=alice["id"])

        assert order_service.delete_order(store, first["id"]) is True
        assert order_service.delete_order(store, first["id"]) is False
        assert order_service.delete_all_orders(store) == 1
        assert order_service.list_orders(store) == []
