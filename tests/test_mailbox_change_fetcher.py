import pytest

from application.usecase.refresh_folder_list import RefreshFolderList
from domain.model.changes import CannotCalculateChanges, ChangeSet
from domain.model.sync_errors import PermanentProtocolError, SyncErrorKind, TransportError
from domain.service.jmap_responses import JmapMethodError
from domain.service.mailbox_change_fetcher import MailboxChangeFetcher
from ports.persistence import SYNC_STATE_KEY

from conftest import ScriptedJmapClient, load_resource


def _changes_response(old, new, has_more, created=(), updated=(), destroyed=(), not_found=()):
    return {
        "methodResponses": [
            [
                "Mailbox/changes",
                {
                    "accountId": "test@example.com",
                    "oldState": old,
                    "newState": new,
                    "hasMoreChanges": has_more,
                    "created": list(created),
                    "updated": list(updated),
                    "destroyed": list(destroyed),
                },
                "c0",
            ],
            [
                "Mailbox/get",
                {
                    "state": new,
                    "list": [{"id": i, "name": i, "role": None} for i in created if i not in not_found],
                    "notFound": [i for i in created if i in not_found],
                },
                "c1",
            ],
            [
                "Mailbox/get",
                {"state": new, "list": [{"id": i, "name": i, "role": None} for i in updated], "notFound": []},
                "c2",
            ],
        ]
    }


def test_single_page(session):
    client = ScriptedJmapClient(load_resource("mailbox/mailbox_changes.json"))

    changes = MailboxChangeFetcher(client).fetch_changes(session, "23")

    assert isinstance(changes, ChangeSet)
    assert changes.created == {"id_folder2"}
    assert changes.updated == {"id_trash"}
    assert changes.destroyed == {"id_folder1"}
    assert changes.mailboxes["id_trash"].name == "Deleted messages"
    assert changes.new_state == "42"


def test_request_uses_back_references(session):
    client = ScriptedJmapClient(load_resource("mailbox/mailbox_changes.json"))

    MailboxChangeFetcher(client, max_changes=50).fetch_changes(session, "23")

    changes_call, created_call, updated_call = client.calls[0]
    assert changes_call == (
        "Mailbox/changes",
        {"accountId": "test@example.com", "sinceState": "23", "maxChanges": 50},
        "c0",
    )
    assert created_call[1]["#ids"] == {
        "resultOf": "c0", "name": "Mailbox/changes", "path": "/created"
    }
    assert updated_call[1]["#ids"]["path"] == "/updated"


def test_pages_are_chained_by_new_state(session):
    client = ScriptedJmapClient(
        _changes_response("10", "11", True, created=["a"]),
        _changes_response("11", "12", True, updated=["b"]),
        _changes_response("12", "13", False, destroyed=["a"]),
    )

    changes = MailboxChangeFetcher(client).fetch_changes(session, "10")

    assert [call[0][1]["sinceState"] for call in client.calls] == ["10", "11", "12"]
    assert changes.new_state == "13"
    assert changes.created == set()
    assert changes.updated == {"b"}
    assert changes.destroyed == {"a"}


def test_cannot_calculate_changes_on_later_page_aborts(session):
    client = ScriptedJmapClient(
        _changes_response("10", "11", True, created=["a"]),
        load_resource("mailbox/mailbox_changes_error_cannot_calculate_changes.json"),
    )

    result = MailboxChangeFetcher(client).fetch_changes(session, "10")

    assert result == CannotCalculateChanges("11")
    assert len(client.calls) == 2


def test_not_found_mailboxes_are_treated_as_destroyed(session):
    client = ScriptedJmapClient(
        _changes_response("10", "11", False, created=["a", "gone"], not_found=["gone"])
    )

    changes = MailboxChangeFetcher(client).fetch_changes(session, "10")

    assert changes.created == {"a"}
    assert changes.destroyed == {"gone"}


def test_repeated_state_with_more_changes_is_a_protocol_error(session):
    client = ScriptedJmapClient(
        _changes_response("10", "11", True),
        _changes_response("11", "10", True),
    )

    with pytest.raises(PermanentProtocolError):
        MailboxChangeFetcher(client).fetch_changes(session, "10")


@pytest.mark.parametrize(
    "error_type, expected",
    [
        ("accountNotFound", JmapMethodError),
        ("invalidArguments", JmapMethodError),
        ("serverUnavailable", TransportError),
        ("serverFail", TransportError),
    ],
)
def test_method_errors_are_mapped(session, error_type, expected):
    client = ScriptedJmapClient({"methodResponses": [["error", {"type": error_type}, "c0"]]})

    with pytest.raises(expected):
        MailboxChangeFetcher(client).fetch_changes(session, "10")


def test_malformed_changes_response(session):
    client = ScriptedJmapClient(
        {
            "methodResponses": [
                ["Mailbox/changes", {"newState": 42, "hasMoreChanges": False}, "c0"],
                ["Mailbox/get", {"list": []}, "c1"],
                ["Mailbox/get", {"list": []}, "c2"],
            ]
        }
    )

    with pytest.raises(PermanentProtocolError):
        MailboxChangeFetcher(client).fetch_changes(session, "10")


def _with_args(response, call_id, **overrides):
    for item in response["methodResponses"]:
        if item[2] == call_id:
            item[1].update(overrides)
    return response


@pytest.mark.parametrize(
    "call_id, overrides",
    [
        ("c1", {"list": None}),
        ("c2", {"list": "id_trash"}),
        ("c1", {"notFound": None}),
        ("c2", {"notFound": [1, 2]}),
        ("c0", {"destroyed": None}),
        ("c0", {"destroyed": {"id_folder1": True}}),
        ("c1", {"list": [{"id": "id_folder2", "name": None}]}),
    ],
)
def test_wrong_shapes_are_protocol_errors(session, call_id, overrides):
    response = _with_args(load_resource("mailbox/mailbox_changes.json"), call_id, **overrides)
    client = ScriptedJmapClient(response)

    with pytest.raises(PermanentProtocolError):
        MailboxChangeFetcher(client).fetch_changes(session, "23")


def test_wrong_shape_surfaces_as_permanent_refresh_failure(populated_storage):
    response = _with_args(load_resource("mailbox/mailbox_changes.json"), "c1", list=None)

    result = RefreshFolderList(ScriptedJmapClient(response), populated_storage).execute()

    assert result.error_kind is SyncErrorKind.PERMANENT_PROTOCOL
    assert populated_storage.writes == []
    assert populated_storage.get_extra_string(SYNC_STATE_KEY) == "23"
