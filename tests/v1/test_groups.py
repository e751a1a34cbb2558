# tests/v1/test_groups.py
"""Tests for friend group endpoints."""

from fastapi import status
from sqlalchemy import select

from ephemera.models import MessageDelivery
from tests.conftest import make_friends


def _create(client, headers, name, member_ids):
    return client.post("/api/v1/groups/", json={"name": name, "member_ids": member_ids}, headers=headers)


def test_create_and_list_group(client, alice, bob, carol, alice_headers, bob_headers, db_session) -> None:
    make_friends(db_session, alice, bob)

    response = _create(client, alice_headers, "  Weekend  ", [bob.id, carol.id])

    assert response.status_code == status.HTTP_201_CREATED
    group_id = response.json()["group_id"]
    assert response.json()["name"] == "Weekend"

    listed = client.get("/api/v1/groups/", headers=bob_headers).json()
    assert [g["id"] for g in listed] == [group_id]
    assert listed[0]["member_count"] == 2
    assert listed[0]["created_by"] == alice.id


def test_create_group_validation(client, alice, alice_headers) -> None:
    assert _create(client, alice_headers, "Empty", []).status_code == 422
    assert _create(client, alice_headers, "   ", ["user-bob"]).status_code == 422
    assert _create(client, alice_headers, "x" * 65, ["user-bob"]).status_code == 422


def test_group_hidden_from_non_members(client, alice, bob, carol, alice_headers, carol_headers, db_session) -> None:
    make_friends(db_session, alice, bob)
    group_id = _create(client, alice_headers, "Pair", [bob.id]).json()["group_id"]

    assert client.get(f"/api/v1/groups/{group_id}", headers=alice_headers).status_code == status.HTTP_200_OK
    assert client.get(f"/api/v1/groups/{group_id}", headers=carol_headers).status_code == status.HTTP_404_NOT_FOUND
    response = client.post(
        f"/api/v1/groups/{group_id}/members", json={"user_id": carol.id}, headers=carol_headers
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_member_management(client, alice, bob, carol, alice_headers, bob_headers, db_session) -> None:
    make_friends(db_session, alice, bob)
    make_friends(db_session, alice, carol)
    group_id = _create(client, alice_headers, "Crew", [bob.id]).json()["group_id"]

    response = client.post(f"/api/v1/groups/{group_id}/members", json={"user_id": carol.id}, headers=bob_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.post(f"/api/v1/groups/{group_id}/members", json={"user_id": carol.id}, headers=alice_headers)
    assert response.json() == {"ok": True, "already_member": False}

    response = client.delete(f"/api/v1/groups/{group_id}/members/{carol.id}", headers=bob_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    response = client.delete(f"/api/v1/groups/{group_id}/members/{carol.id}", headers=alice_headers)
    assert response.json() == {"ok": True}

    response = client.patch(f"/api/v1/groups/{group_id}", json={"name": "Duo"}, headers=alice_headers)
    assert response.json() == {"ok": True}
    assert client.get(f"/api/v1/groups/{group_id}", headers=bob_headers).json()["name"] == "Duo"

    assert client.post(f"/api/v1/groups/{group_id}/leave", headers=bob_headers).json() == {"ok": True}
    assert client.get("/api/v1/groups/", headers=bob_headers).json() == []


def test_send_to_group_fans_out_to_other_members(
    client, alice, bob, carol, alice_headers, carol_headers, dispatcher, db_session
) -> None:
    make_friends(db_session, alice, bob)
    make_friends(db_session, alice, carol)
    group_id = _create(client, alice_headers, "Family", [bob.id, carol.id]).json()["group_id"]

    response = client.post(
        f"/api/v1/groups/{group_id}/messages",
        json={"content_ref": "https://utfs.io/f/group-photo", "kind": "image/jpeg"},
        headers=carol_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    message_id = response.json()["message_id"]
    recipients = db_session.execute(
        select(MessageDelivery.recipient_id).where(MessageDelivery.message_id == message_id)
    ).scalars().all()
    assert set(recipients) == {alice.id, bob.id}
    assert {recipient_id for _, recipient_id, _ in dispatcher.messages} == {alice.id, bob.id}
    assert all(sender_name == "Carol" for _, _, sender_name in dispatcher.messages)


def test_send_to_group_without_other_members(client, alice, alice_headers) -> None:
    group_id = _create(client, alice_headers, "Solo", ["user-nobody"]).json()["group_id"]

    response = client.post(
        f"/api/v1/groups/{group_id}/messages",
        json={"content_ref": "https://utfs.io/f/photo"},
        headers=alice_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
