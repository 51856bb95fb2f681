"""Tests for inbound event dispatch."""

import pytest

from pmhub.realtime.dispatcher import EventDispatcher, MalformedMessage
from pmhub.schemas.events import INBOUND_MESSAGE_TYPES, JoinRoom, TaskMutated
from tests.conftest import drain


@pytest.fixture
def room_of_three(router, dispatcher, connect):
    """alice and bob in project 1, carol in project 2, queues drained."""
    alice, bob, carol = connect("alice"), connect("bob"), connect("carol")
    dispatcher.dispatch(alice, "join-room", {"projectId": "p1"})
    dispatcher.dispatch(bob, "join-room", {"projectId": "p1"})
    dispatcher.dispatch(carol, "join-room", {"projectId": "p2"})
    for conn in (alice, bob, carol):
        drain(conn)
    return alice, bob, carol


class TestParse:

    def test_known_kind(self) -> None:
        message = EventDispatcher.parse("task-mutated", {"projectId": "p1", "task": {"id": "t1", "status": "done"}})

        assert isinstance(message, TaskMutated)
        assert message.data.project_id == "p1"
        assert message.data.task["status"] == "done"

    def test_numeric_ids_are_strings(self) -> None:
        message = EventDispatcher.parse("join-room", {"projectId": 42})

        assert isinstance(message, JoinRoom)
        assert message.data.project_id == "42"

    @pytest.mark.parametrize(
        "kind,payload",
        [
            ("no-such-event", {"projectId": "p1"}),
            ("join-room", {}),
            ("join-room", None),
            ("join-room", {"projectId": ""}),
            ("task-mutated", {"projectId": "p1"}),
            ("task-mutated", {"projectId": "p1", "task": {"title": "no id"}}),
            ("task-deleted", {"projectId": "p1"}),
            ("comment-added", {"projectId": "p1", "taskId": "t1"}),
            (None, None),
        ],
    )
    def test_malformed(self, kind, payload) -> None:
        with pytest.raises(MalformedMessage):
            EventDispatcher.parse(kind, payload)

    def test_every_inbound_kind_has_a_handler(self, dispatcher) -> None:
        assert set(dispatcher._handlers) == set(INBOUND_MESSAGE_TYPES)


class TestDispatch:

    def test_join_announces_to_existing_members(self, dispatcher, connect) -> None:
        alice, bob = connect("alice"), connect("bob")
        dispatcher.dispatch(alice, "join-room", {"projectId": "p1"})

        assert dispatcher.dispatch(bob, "join-room", {"projectId": "p1"}) == 1

        [frame] = drain(alice)
        assert frame["type"] == "user-joined-project"
        assert frame["data"]["userId"] == "bob"
        assert frame["data"]["projectId"] == "p1"
        assert frame["data"]["user"]["name"] == "Bob"
        assert drain(bob) == []

    def test_rejoin_is_silent(self, dispatcher, connect) -> None:
        alice, bob = connect("alice"), connect("bob")
        dispatcher.dispatch(alice, "join-room", {"projectId": "p1"})
        dispatcher.dispatch(bob, "join-room", {"projectId": "p1"})
        drain(alice)

        assert dispatcher.dispatch(bob, "join-room", {"projectId": "p1"}) == 0
        assert drain(alice) == []

    def test_task_mutated_reaches_room_only(self, dispatcher, room_of_three) -> None:
        alice, bob, carol = room_of_three

        delivered = dispatcher.dispatch(alice, "task-mutated", {"projectId": "p1", "task": {"id": "t1", "status": "done"}})

        assert delivered == 1
        [frame] = drain(bob)
        assert frame == {
            "type": "task-updated",
            "data": {
                "task": {"id": "t1", "status": "done"},
                "updatedBy": {"id": "alice", "name": "Alice", "email": "alice@example.com", "avatar": None},
            },
        }
        assert drain(alice) == []
        assert drain(carol) == []

    def test_task_created(self, dispatcher, room_of_three) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch(alice, "task-created", {"projectId": "p1", "task": {"id": "t9", "title": "new"}})

        [frame] = drain(bob)
        assert frame["type"] == "task-created"
        assert frame["data"]["task"]["id"] == "t9"
        assert frame["data"]["createdBy"]["id"] == "alice"

    def test_task_deleted(self, dispatcher, room_of_three) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch(alice, "task-deleted", {"projectId": "p1", "taskId": "t1"})

        [frame] = drain(bob)
        assert frame["type"] == "task-deleted"
        assert frame["data"]["taskId"] == "t1"
        assert frame["data"]["deletedBy"]["id"] == "alice"

    def test_project_mutated(self, dispatcher, room_of_three) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch(alice, "project-mutated", {"projectId": "p1", "project": {"id": "p1", "name": "Renamed"}})

        [frame] = drain(bob)
        assert frame["type"] == "project-updated"
        assert frame["data"]["project"]["name"] == "Renamed"

    def test_comment_added(self, dispatcher, room_of_three) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch(
            alice, "comment-added", {"projectId": "p1", "taskId": "t1", "comment": {"id": "c1", "content": "hi"}}
        )

        [frame] = drain(bob)
        assert frame["type"] == "comment-added"
        assert frame["data"]["taskId"] == "t1"
        assert frame["data"]["comment"]["content"] == "hi"
        assert frame["data"]["addedBy"]["id"] == "alice"

    @pytest.mark.parametrize(
        "kind,outbound", [("comment-typing", "comment-user-typing"), ("task-viewing", "task-user-viewing")]
    )
    def test_presence_hints(self, dispatcher, room_of_three, kind, outbound) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch(alice, kind, {"projectId": "p1", "taskId": "t1"})

        [frame] = drain(bob)
        assert frame["type"] == outbound
        assert frame["data"] == {
            "taskId": "t1",
            "user": {"id": "alice", "name": "Alice", "email": "alice@example.com", "avatar": None},
        }

    def test_leave_room_stops_delivery(self, dispatcher, room_of_three) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch(bob, "leave-room", {"projectId": "p1"})

        assert dispatcher.dispatch(alice, "task-deleted", {"projectId": "p1", "taskId": "t1"}) == 0
        assert drain(bob) == []

    def test_malformed_is_dropped(self, dispatcher, room_of_three, caplog) -> None:
        alice, bob, _ = room_of_three

        assert dispatcher.dispatch(alice, "task-mutated", {"projectId": "p1"}) is None
        assert drain(bob) == []
        assert "Dropped malformed message" in caplog.text

    @pytest.mark.parametrize("frame", [[1, 2], "join-room", 7, None])
    def test_non_object_frame_is_dropped(self, dispatcher, connect, frame) -> None:
        assert dispatcher.dispatch_frame(connect("alice"), frame) is None

    def test_dispatch_frame(self, dispatcher, room_of_three) -> None:
        alice, bob, _ = room_of_three

        dispatcher.dispatch_frame(alice, {"type": "task-deleted", "data": {"projectId": "p1", "taskId": "t1"}})

        assert [f["type"] for f in drain(bob)] == ["task-deleted"]
