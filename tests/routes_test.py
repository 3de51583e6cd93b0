import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from chat_fixtures import FakeMinio, FlakyMessageRepository, make_avatar, make_db

from dependencies.db import get_db, get_object_storage
from dependencies.message import get_feed, get_message_repository
from main import app
from services.change_feed import ChangeFeed


class EndingFeed(ChangeFeed):
    """Feed whose subscriptions end once their queued events are read, so streams finish"""

    def subscribe(self, *args, **kwargs):
        subscription = super().subscribe(*args, **kwargs)
        subscription.end()
        return subscription


@pytest.fixture
def api():
    db = make_db()
    storage = FakeMinio()
    feed = ChangeFeed()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_object_storage] = lambda: storage
    app.dependency_overrides[get_feed] = lambda: feed
    # no context manager: startup would try to reach MongoDB and MinIO
    client = TestClient(app)
    yield SimpleNamespace(client=client, db=db, storage=storage, feed=feed)
    app.dependency_overrides.clear()


def register(client, email, password="secret123"):
    response = client.post(
        "/auth/register",
        data={"email": email, "password": password},
        files={"avatar": ("avatar.png", make_avatar(), "image/png")},
    )
    assert response.status_code == 201, response.text
    return response.json()


def login(client, email, password="secret123"):
    response = client.post("/auth/token", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def users(api):
    alice = register(api.client, "alice@example.com")
    bob = register(api.client, "bob@example.com")
    return SimpleNamespace(
        alice=alice,
        bob=bob,
        alice_auth=login(api.client, "alice@example.com"),
        bob_auth=login(api.client, "bob@example.com"),
    )


def test_root_is_alive(api):
    assert api.client.get("/").json() == {"message": "API is alive!"}


def test_register_without_avatar_is_rejected(api):
    response = api.client.post("/auth/register", data={"email": "carol@example.com", "password": "secret123"})

    assert response.status_code == 400
    assert response.json()["detail"] == "You must select an avatar image"


def test_bad_credentials_are_rejected(api, users):
    response = api.client.post("/auth/token", data={"username": "alice@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_endpoints_require_a_token(api):
    assert api.client.get("/users/me").status_code == 401
    assert api.client.post("/messages", json={"toId": "x", "text": "hi"}).status_code == 401


def test_user_lookup_and_partner_list(api, users):
    me = api.client.get("/users/me", headers=users.alice_auth).json()
    assert me == users.alice
    assert set(me) == {"uid", "email", "profileImageURL"}

    partners = api.client.get("/users", headers=users.alice_auth).json()
    assert [u["uid"] for u in partners] == [users.bob["uid"]]

    everyone_but_bob = api.client.get(
        "/users", params={"excluding": users.bob["uid"]}, headers=users.alice_auth
    ).json()
    assert [u["uid"] for u in everyone_but_bob] == [users.alice["uid"]]

    bob = api.client.get(f"/users/{users.bob['uid']}", headers=users.alice_auth)
    assert bob.json()["email"] == "bob@example.com"
    assert api.client.get("/users/unknown", headers=users.alice_auth).status_code == 404


def test_avatar_is_served_by_uid(api, users):
    url = users.alice["profileImageURL"]
    assert url == f"http://chat.local/storage/avatars/{users.alice['uid']}"

    response = api.client.get(f"/storage/avatars/{users.alice['uid']}")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"


def test_send_message_end_to_end(api, users):
    response = api.client.post(
        "/messages", json={"toId": users.bob["uid"], "text": "hi"}, headers=users.alice_auth
    )

    assert response.status_code == 201
    outcome = response.json()
    assert outcome["status"] == "delivered"
    assert outcome["error"] is None
    assert [w["ok"] for w in outcome["writes"]] == [True, True, True, True]

    alice_view = api.client.get("/messages", params={"peer": users.bob["uid"]}, headers=users.alice_auth).json()
    bob_view = api.client.get("/messages", params={"peer": users.alice["uid"]}, headers=users.bob_auth).json()
    for view in (alice_view, bob_view):
        assert len(view) == 1
        assert view[0]["messageId"] == outcome["messageId"]
        assert (view[0]["fromId"], view[0]["toId"], view[0]["text"]) == (users.alice["uid"], users.bob["uid"], "hi")

    bob_recent = api.client.get("/recent", headers=users.bob_auth).json()
    assert len(bob_recent) == 1
    assert bob_recent[0]["id"] == users.alice["uid"]
    assert bob_recent[0]["email"] == "alice@example.com"
    assert bob_recent[0]["status"] is True


def test_owner_must_be_caller(api, users):
    response = api.client.get(
        "/messages",
        params={"owner": users.alice["uid"], "peer": users.bob["uid"]},
        headers=users.bob_auth,
    )
    assert response.status_code == 403

    response = api.client.get("/recent", params={"owner": users.alice["uid"]}, headers=users.bob_auth)
    assert response.status_code == 403


def test_send_as_someone_else_is_forbidden(api, users):
    response = api.client.post(
        "/messages",
        json={"fromId": users.bob["uid"], "toId": users.bob["uid"], "text": "hi"},
        headers=users.alice_auth,
    )
    assert response.status_code == 403


def test_partial_send_is_reported_and_can_be_repaired(api, users):
    flaky = FlakyMessageRepository(api.db, fail_owners={users.bob["uid"]})
    app.dependency_overrides[get_message_repository] = lambda: flaky
    body = {"toId": users.bob["uid"], "text": "hi", "messageId": "client-msg-1"}

    response = api.client.post("/messages", json=body, headers=users.alice_auth)
    assert response.status_code == 207
    assert response.json()["status"] == "partial"
    assert "recipient_message" in response.json()["error"]

    flaky.fail_owners.clear()
    response = api.client.post("/messages", json=body, headers=users.alice_auth)
    assert response.status_code == 201
    assert response.json()["status"] == "delivered"

    bob_view = api.client.get("/messages", params={"peer": users.alice["uid"]}, headers=users.bob_auth).json()
    assert [m["messageId"] for m in bob_view] == ["client-msg-1"]


def sse_frames(response):
    frames = []
    for block in response.text.split("\n\n"):
        if not block.strip() or block.startswith(":"):
            continue
        fields = dict(line.split(": ", 1) for line in block.split("\n"))
        fields["data"] = json.loads(fields["data"])
        frames.append(fields)
    return frames


@pytest.fixture
def stream_feed(api):
    feed = EndingFeed()
    app.dependency_overrides[get_feed] = lambda: feed
    return feed


def test_recent_stream_opens_with_snapshot(api, users, stream_feed):
    api.client.post("/messages", json={"toId": users.bob["uid"], "text": "hi"}, headers=users.alice_auth)

    response = api.client.get("/recent/stream", headers=users.bob_auth)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = sse_frames(response)
    assert [f["event"] for f in frames] == ["snapshot"]
    assert frames[0]["id"] == stream_feed.resume_token(stream_feed.last_seq)
    assert [(e["id"], e["text"]) for e in frames[0]["data"]] == [(users.alice["uid"], "hi")]


def test_message_stream_resumes_from_last_event_id(api, users, stream_feed):
    api.client.post("/messages", json={"toId": users.bob["uid"], "text": "one"}, headers=users.alice_auth)
    seen = stream_feed.resume_token(stream_feed.last_seq)
    api.client.post("/messages", json={"toId": users.bob["uid"], "text": "two"}, headers=users.alice_auth)

    response = api.client.get(
        "/messages/stream",
        params={"peer": users.alice["uid"]},
        headers={**users.bob_auth, "Last-Event-ID": seen},
    )

    assert response.status_code == 200
    frames = sse_frames(response)
    assert [f["event"] for f in frames] == ["insert"]
    assert frames[0]["data"]["text"] == "two"
    assert frames[0]["id"].startswith(f"{stream_feed.epoch}-")


def test_stale_last_event_id_gets_a_fresh_snapshot(api, users, stream_feed):
    api.client.post("/messages", json={"toId": users.bob["uid"], "text": "one"}, headers=users.alice_auth)

    response = api.client.get(
        "/messages/stream",
        params={"peer": users.alice["uid"]},
        headers={**users.bob_auth, "Last-Event-ID": "previous-process-3"},
    )

    frames = sse_frames(response)
    assert [f["event"] for f in frames] == ["snapshot"]
    assert [m["text"] for m in frames[0]["data"]] == ["one"]


def test_stream_with_yourself_is_rejected(api, users, stream_feed):
    response = api.client.get("/messages/stream", params={"peer": users.alice["uid"]}, headers=users.alice_auth)

    assert response.status_code == 400
    assert stream_feed.subscriber_count() == 0


def test_streams_require_a_token(api, stream_feed):
    assert api.client.get("/recent/stream").status_code == 401
    assert api.client.get("/messages/stream", params={"peer": "x"}).status_code == 401
