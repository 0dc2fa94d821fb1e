from fastapi.testclient import TestClient

from src.cherished.main import app

client = TestClient(app)

BASE = "/api/v1/friends"


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}


def send(from_user: str, to_user: str):
    return client.post(f"{BASE}/requests", json={"to_user_id": to_user}, headers=as_user(from_user))


class TestFriendRequests:
    def test_send_and_list_pending(self):
        res = send("alice", "bob")
        assert res.status_code == 201
        request = res.json()
        assert request["from_user_id"] == "alice"
        assert request["to_user_id"] == "bob"
        assert request["status"] == "pending"

        incoming = client.get(f"{BASE}/requests", headers=as_user("bob")).json()
        assert [r["id"] for r in incoming] == [request["id"]]
        outgoing = client.get(f"{BASE}/requests?direction=outgoing", headers=as_user("alice")).json()
        assert [r["id"] for r in outgoing] == [request["id"]]
        assert client.get(f"{BASE}/requests", headers=as_user("alice")).json() == []

    def test_duplicate_pending_request_in_either_direction(self):
        assert send("alice", "bob").status_code == 201
        res_dup = send("alice", "bob")
        assert res_dup.status_code == 409
        assert res_dup.json()["detail"] == "Friend request already pending"
        assert send("bob", "alice").status_code == 409

    def test_cannot_befriend_self(self):
        res = send("alice", "alice")
        assert res.status_code == 400
        assert res.json()["detail"] == "Cannot send a friend request to yourself"

    def test_blank_recipient_is_rejected(self):
        res = client.post(f"{BASE}/requests", json={"to_user_id": "   "}, headers=as_user("alice"))
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"

    def test_invalid_direction(self):
        res = client.get(f"{BASE}/requests?direction=sideways", headers=as_user("alice"))
        assert res.status_code == 422


class TestAcceptReject:
    def test_accept_creates_friendship_for_both(self):
        request_id = send("alice", "bob").json()["id"]

        res_wrong = client.post(f"{BASE}/requests/{request_id}/accept", headers=as_user("alice"))
        assert res_wrong.status_code == 403
        assert res_wrong.json()["detail"] == "Only the recipient can answer a friend request"

        res = client.post(f"{BASE}/requests/{request_id}/accept", headers=as_user("bob"))
        assert res.status_code == 200
        assert res.json()["status"] == "accepted"

        alice_friends = client.get(f"{BASE}/", headers=as_user("alice")).json()
        bob_friends = client.get(f"{BASE}/", headers=as_user("bob")).json()
        assert [f["user_id"] for f in alice_friends] == ["bob"]
        assert [f["user_id"] for f in bob_friends] == ["alice"]
        assert alice_friends[0]["request_id"] == request_id
        assert client.get(f"{BASE}/requests", headers=as_user("bob")).json() == []

    def test_answered_requests_cannot_change(self):
        request_id = send("alice", "bob").json()["id"]
        assert client.post(f"{BASE}/requests/{request_id}/accept", headers=as_user("bob")).status_code == 200
        res = client.post(f"{BASE}/requests/{request_id}/reject", headers=as_user("bob"))
        assert res.status_code == 409
        assert res.json()["detail"] == "Friend request is already accepted"

        res_again = send("bob", "alice")
        assert res_again.status_code == 409
        assert res_again.json()["detail"] == "Already friends"

    def test_rejected_request_can_be_resent(self):
        request_id = send("carol", "dave").json()["id"]
        res = client.post(f"{BASE}/requests/{request_id}/reject", headers=as_user("dave"))
        assert res.status_code == 200
        assert res.json()["status"] == "rejected"
        assert client.get(f"{BASE}/", headers=as_user("carol")).json() == []
        assert send("carol", "dave").status_code == 201

    def test_unknown_request(self):
        res = client.post(f"{BASE}/requests/nope/accept", headers=as_user("bob"))
        assert res.status_code == 404
        assert res.json()["detail"] == "Friend request not found"
