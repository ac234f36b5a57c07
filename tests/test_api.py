"""End-to-end scenarios through the HTTP API"""

import pytest

from conftest import bearer, register

API = "/api/v1"


@pytest.fixture
async def alice(client):
    return await register(client, "alice")


@pytest.fixture
async def bob(client, alice):
    return await register(client, "bob")


async def create_project(client, owner, name="Demo", **extra):
    resp = await client.post(f"{API}/projects/", json={"name": name, **extra}, headers=bearer(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def upload(client, who, project_id, name="notes.txt", data=b"hello", mime="text/plain"):
    return await client.post(
        f"{API}/files/upload/{project_id}",
        files={"upload_file": (name, data, mime)},
        headers=bearer(who),
    )


class TestIdentity:

    async def test_register_bootstrap_and_me(self, client, alice, bob):
        assert alice["user"]["is_admin"] and alice["user"]["can_upload"]
        assert not bob["user"]["is_admin"] and not bob["user"]["can_upload"]

        me = await client.get(f"{API}/users/me", headers=bearer(bob))
        assert me.status_code == 200
        assert me.json()["username"] == "bob"

    async def test_has_admin(self, client):
        assert (await client.get(f"{API}/auth/has-admin")).json() == {"has_admin": False}
        await register(client, "alice")
        assert (await client.get(f"{API}/auth/has-admin")).json() == {"has_admin": True}

    async def test_duplicate_registration(self, client, alice):
        resp = await client.post(
            f"{API}/auth/register",
            json={"username": "alice", "email": "new@example.com", "password": "password123"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    async def test_invalid_registration(self, client):
        resp = await client.post(
            f"{API}/auth/register",
            json={"username": "a!", "email": "not-an-email", "password": "123"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    async def test_login_and_logout(self, client, alice):
        bad = await client.post(f"{API}/auth/token", data={"username": "alice", "password": "nope"})
        unknown = await client.post(f"{API}/auth/token", data={"username": "ghost", "password": "nope"})
        assert bad.status_code == unknown.status_code == 401
        assert bad.json() == unknown.json()

        ok = await client.post(f"{API}/auth/token", data={"username": "alice@example.com", "password": "password123"})
        assert ok.status_code == 200
        token = ok.json()

        out = await client.post(f"{API}/auth/logout", headers=bearer(token))
        assert out.status_code == 200
        again = await client.get(f"{API}/users/me", headers=bearer(token))
        assert again.status_code == 401

    async def test_missing_token(self, client):
        resp = await client.get(f"{API}/users/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "authentication_error"

    async def test_admin_grants_upload(self, client, alice, bob):
        denied = await client.post(f"{API}/projects/", json={"name": "Nope"}, headers=bearer(bob))
        assert denied.status_code == 403

        bob_id = bob["user"]["id"]
        for _ in range(2):
            resp = await client.post(
                f"{API}/admin/users/{bob_id}/grant-upload", json={"can_upload": True}, headers=bearer(alice)
            )
            assert resp.status_code == 200
            assert resp.json()["can_upload"] is True
            assert resp.json()["is_admin"] is False

        await create_project(client, bob, name="Bob's")

        forbidden = await client.post(
            f"{API}/admin/users/{bob_id}/grant-upload", json={"can_upload": False}, headers=bearer(bob)
        )
        assert forbidden.status_code == 403

        users = await client.get(f"{API}/admin/users", headers=bearer(alice))
        assert {u["username"] for u in users.json()} == {"alice", "bob"}


class TestCollaboration:

    async def test_demo_scenario(self, client, alice, bob):
        project = await create_project(client, alice)
        pid = project["id"]

        added = await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": "bob@example.com", "permission": "read"},
            headers=bearer(alice),
        )
        assert added.status_code == 200
        assert [c["permission"] for c in added.json()["collaborators"]] == ["read"]

        assert (await upload(client, bob, pid)).status_code == 403

        changed = await client.put(
            f"{API}/projects/{pid}/collaborators/{bob['user']['id']}",
            json={"permission": "write"},
            headers=bearer(alice),
        )
        assert changed.status_code == 200

        uploaded = await upload(client, bob, pid)
        assert uploaded.status_code == 201, uploaded.text
        assert uploaded.json()["uploaded_by"] == bob["user"]["id"]

        delete = await client.delete(f"{API}/projects/{pid}", headers=bearer(bob))
        assert delete.status_code == 403

    async def test_readding_updates_tier_in_place(self, client, alice, bob):
        pid = (await create_project(client, alice))["id"]
        for perm in ("read", "admin", "write"):
            resp = await client.post(
                f"{API}/projects/{pid}/collaborators",
                json={"email": "bob@example.com", "permission": perm},
                headers=bearer(alice),
            )
            assert resp.status_code == 200
        collaborators = resp.json()["collaborators"]
        assert len(collaborators) == 1
        assert collaborators[0]["permission"] == "write"

    async def test_owner_cannot_be_collaborator(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        resp = await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": "alice@example.com", "permission": "admin"},
            headers=bearer(alice),
        )
        assert resp.status_code == 400

    async def test_private_project_hidden_from_strangers(self, client, alice, bob):
        pid = (await create_project(client, alice))["id"]
        assert (await client.get(f"{API}/projects/{pid}", headers=bearer(bob))).status_code == 404

        public = (await create_project(client, alice, name="Open", is_public=True))["id"]
        assert (await client.get(f"{API}/projects/{public}", headers=bearer(bob))).status_code == 200
        assert (await upload(client, bob, public)).status_code == 403

    async def test_write_tier_updates_metadata_admin_tier_does_not(self, client, alice, bob):
        pid = (await create_project(client, alice))["id"]
        await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": "bob@example.com", "permission": "admin"},
            headers=bearer(alice),
        )
        resp = await client.put(f"{API}/projects/{pid}", json={"name": "Renamed"}, headers=bearer(bob))
        assert resp.status_code == 403

        await client.put(
            f"{API}/projects/{pid}/collaborators/{bob['user']['id']}",
            json={"permission": "write"},
            headers=bearer(alice),
        )
        resp = await client.put(
            f"{API}/projects/{pid}", json={"name": "Renamed", "tags": ["a", "a", "b"]}, headers=bearer(bob)
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Renamed"
        assert resp.json()["tags"] == ["a", "b"]

    async def test_remove_collaborator(self, client, alice, bob):
        pid = (await create_project(client, alice))["id"]
        await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": "bob@example.com", "permission": "read"},
            headers=bearer(alice),
        )
        listed = await client.get(f"{API}/projects/", headers=bearer(bob))
        assert [p["id"] for p in listed.json()] == [pid]

        resp = await client.delete(f"{API}/projects/{pid}/collaborators/{bob['user']['id']}", headers=bearer(alice))
        assert resp.status_code == 200
        assert resp.json()["collaborators"] == []
        assert (await client.get(f"{API}/projects/", headers=bearer(bob))).json() == []


class TestFiles:

    async def test_upload_download_delete(self, client, alice, storage):
        pid = (await create_project(client, alice))["id"]
        f = (await upload(client, alice, pid, data=b"payload")).json()

        listed = await client.get(f"{API}/files/project/{pid}", headers=bearer(alice))
        assert [x["id"] for x in listed.json()] == [f["id"]]

        got = await client.get(f"{API}/files/download/{f['id']}", headers=bearer(alice))
        assert got.status_code == 200
        assert got.content == b"payload"

        gone = await client.delete(f"{API}/files/{f['id']}", headers=bearer(alice))
        assert gone.status_code == 200
        assert not any(storage.root.iterdir())

    async def test_rejected_mime_type(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        resp = await upload(client, alice, pid, name="run.exe", mime="application/x-msdownload")
        assert resp.status_code == 400

    async def test_uploader_can_delete_own_file(self, client, alice, bob):
        pid = (await create_project(client, alice))["id"]
        await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": "bob@example.com", "permission": "write"},
            headers=bearer(alice),
        )
        mine = (await upload(client, bob, pid)).json()
        hers = (await upload(client, alice, pid)).json()

        assert (await client.delete(f"{API}/files/{hers['id']}", headers=bearer(bob))).status_code == 403
        assert (await client.delete(f"{API}/files/{mine['id']}", headers=bearer(bob))).status_code == 200

    async def test_upload_posts_system_message(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        f = (await upload(client, alice, pid)).json()

        page = (await client.get(f"{API}/chat/project/{pid}", headers=bearer(alice))).json()
        assert page["total_items"] == 1
        assert page["items"][0]["message_type"] == "system"
        assert page["items"][0]["file_id"] == f["id"]


class TestShares:

    async def test_download_cap_scenario(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        f = (await upload(client, alice, pid, data=b"abc")).json()

        created = await client.post(f"{API}/shares/project/{pid}", json={"max_downloads": 2}, headers=bearer(alice))
        assert created.status_code == 201
        share_id = created.json()["share_id"]
        assert "password_hash" not in created.json()

        for _ in range(2):
            resp = await client.get(f"{API}/shares/{share_id}/download/{f['id']}")
            assert resp.status_code == 200
            assert resp.content == b"abc"

        stats = await client.get(f"{API}/shares/{share_id}/stats", headers=bearer(alice))
        assert stats.json()["current_downloads"] == 2
        assert stats.json()["state"] == "exhausted"

        third = await client.get(f"{API}/shares/{share_id}/download/{f['id']}")
        assert third.status_code == 410
        assert third.json()["error"] == "gone"

    async def test_second_share_conflicts(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        assert (await client.post(f"{API}/shares/project/{pid}", json={}, headers=bearer(alice))).status_code == 201
        assert (await client.post(f"{API}/shares/project/{pid}", json={}, headers=bearer(alice))).status_code == 409

    async def test_password_scenario(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        f = (await upload(client, alice, pid)).json()
        share_id = (
            await client.post(f"{API}/shares/project/{pid}", json={"password": "secret123"}, headers=bearer(alice))
        ).json()["share_id"]

        fetched = (await client.get(f"{API}/shares/{share_id}")).json()
        assert fetched["requires_password"] is True
        assert fetched["files"] is None

        wrong = await client.post(f"{API}/shares/{share_id}/verify", json={"password": "nope"})
        assert wrong.status_code == 401

        ok = await client.post(f"{API}/shares/{share_id}/verify", json={"password": "secret123"})
        assert ok.status_code == 200
        body = ok.json()
        assert [x["id"] for x in body["files"]] == [f["id"]]

        blocked = await client.get(f"{API}/shares/{share_id}/download/{f['id']}")
        assert blocked.status_code == 401
        with_proof = await client.get(
            f"{API}/shares/{share_id}/download/{f['id']}", headers={"X-Share-Token": body["share_token"]}
        )
        assert with_proof.status_code == 200
        with_password = await client.get(
            f"{API}/shares/{share_id}/files", headers={"X-Share-Password": "secret123"}
        )
        assert with_password.status_code == 200

    async def test_edit_and_deactivate(self, client, alice):
        pid = (await create_project(client, alice))["id"]
        share_id = (
            await client.post(f"{API}/shares/project/{pid}", json={"password": "pw"}, headers=bearer(alice))
        ).json()["share_id"]

        edited = await client.put(f"{API}/shares/{share_id}", json={"password": ""}, headers=bearer(alice))
        assert edited.json()["has_password"] is False
        assert (await client.get(f"{API}/shares/{share_id}")).json()["requires_password"] is False

        assert (await client.delete(f"{API}/shares/{share_id}", headers=bearer(alice))).status_code == 200
        assert (await client.get(f"{API}/shares/{share_id}")).status_code == 410

        mine = await client.get(f"{API}/shares/mine", headers=bearer(alice))
        assert [s["share_id"] for s in mine.json()] == [share_id]

    async def test_share_management_is_owner_only(self, client, alice, bob):
        pid = (await create_project(client, alice))["id"]
        await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": "bob@example.com", "permission": "admin"},
            headers=bearer(alice),
        )
        resp = await client.post(f"{API}/shares/project/{pid}", json={}, headers=bearer(bob))
        assert resp.status_code == 403


async def test_delete_project_cascades(client, alice, storage):
    pid = (await create_project(client, alice))["id"]
    f = (await upload(client, alice, pid)).json()
    await client.post(f"{API}/chat/project/{pid}", json={"content": "hi"}, headers=bearer(alice))
    share_id = (await client.post(f"{API}/shares/project/{pid}", json={}, headers=bearer(alice))).json()["share_id"]

    resp = await client.delete(f"{API}/projects/{pid}", headers=bearer(alice))
    assert resp.status_code == 200

    assert (await client.get(f"{API}/projects/{pid}", headers=bearer(alice))).status_code == 404
    assert (await client.get(f"{API}/files/download/{f['id']}", headers=bearer(alice))).status_code == 404
    assert (await client.get(f"{API}/shares/{share_id}")).status_code == 404
    assert not any(storage.root.iterdir())


async def test_chat_permissions(client, alice, bob):
    carol = await register(client, "carol")
    pid = (await create_project(client, alice))["id"]
    for who, perm in (("bob", "write"), ("carol", "read")):
        await client.post(
            f"{API}/projects/{pid}/collaborators",
            json={"email": f"{who}@example.com", "permission": perm},
            headers=bearer(alice),
        )

    msg = (await client.post(f"{API}/chat/project/{pid}", json={"content": "  hello  "}, headers=bearer(carol))).json()
    assert msg["content"] == "hello"

    edited = await client.put(f"{API}/chat/{msg['id']}", json={"content": "edited"}, headers=bearer(bob))
    assert edited.status_code == 200
    assert edited.json()["is_edited"] is True

    assert (await client.delete(f"{API}/chat/{msg['id']}", headers=bearer(bob))).status_code == 403
    assert (await client.delete(f"{API}/chat/{msg['id']}", headers=bearer(carol))).status_code == 200

    blank = await client.post(f"{API}/chat/project/{pid}", json={"content": "   "}, headers=bearer(carol))
    assert blank.status_code == 400


@pytest.fixture
async def private_chat(client, alice, bob):
    """bob owns a private project where carol (read tier) has posted"""
    carol = await register(client, "carol")
    await client.post(
        f"{API}/admin/users/{bob['user']['id']}/grant-upload", json={"can_upload": True}, headers=bearer(alice)
    )
    pid = (await create_project(client, bob, name="Private"))["id"]
    await client.post(
        f"{API}/projects/{pid}/collaborators",
        json={"email": "carol@example.com", "permission": "read"},
        headers=bearer(bob),
    )
    msg = (await client.post(f"{API}/chat/project/{pid}", json={"content": "hi"}, headers=bearer(carol))).json()
    return pid, carol, msg


class TestChatModeration:

    async def test_global_admin_moderates_without_membership(self, client, alice, private_chat):
        pid, _, msg = private_chat
        assert (await client.get(f"{API}/projects/{pid}", headers=bearer(alice))).status_code == 404

        edited = await client.put(f"{API}/chat/{msg['id']}", json={"content": "moderated"}, headers=bearer(alice))
        assert edited.status_code == 200
        assert edited.json()["content"] == "moderated"
        assert (await client.delete(f"{API}/chat/{msg['id']}", headers=bearer(alice))).status_code == 200

    async def test_removed_sender_keeps_own_message_rights(self, client, bob, private_chat):
        pid, carol, msg = private_chat
        await client.delete(f"{API}/projects/{pid}/collaborators/{carol['user']['id']}", headers=bearer(bob))

        edited = await client.put(f"{API}/chat/{msg['id']}", json={"content": "mine"}, headers=bearer(carol))
        assert edited.status_code == 200
        assert (await client.delete(f"{API}/chat/{msg['id']}", headers=bearer(carol))).status_code == 200

    async def test_stranger_cannot_moderate(self, client, private_chat):
        _, _, msg = private_chat
        dave = await register(client, "dave")
        assert (await client.delete(f"{API}/chat/{msg['id']}", headers=bearer(dave))).status_code == 403
