from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import add_member, create_task, login


async def _messages(client: AsyncClient, headers: dict[str, str]) -> list[str]:
  r = await client.get("/notifications", headers=headers)
  assert r.status_code == 200, r.text
  return [n["message"] for n in r.json()]


@pytest.mark.anyio
async def test_comment_and_reply_flow(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice, "Launch")
  bob = await add_member(client, t["id"], alice, "bob")

  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "first pass done"}, headers=alice)
  assert r.status_code == 200, r.text
  body = r.json()
  (c,) = body["comments"]
  assert c["comment"] == "first pass done"
  assert c["user"]["username"] == "alice"
  assert body["activity"][-1]["action"] == "alice added comment first pass done"

  r = await client.post(f"/tasks/{t['id']}/comments/{c['id']}/replies", json={"comment": "looks good"}, headers=bob)
  assert r.status_code == 200, r.text
  body = r.json()
  (reply,) = body["comments"][0]["replies"]
  assert reply["comment"] == "looks good"
  assert reply["user"]["username"] == "bob"
  assert body["activity"][-1]["action"] == "bob replied comment looks good"

  r = await client.patch(
    f"/tasks/{t['id']}/comments/{c['id']}/replies/{reply['id']}", json={"comment": "looks great"}, headers=bob
  )
  assert r.status_code == 200, r.text
  assert r.json()["comments"][0]["replies"][0]["updatedAt"] is not None
  assert r.json()["activity"][-1]["action"] == 'bob edited reply from "looks good" to "looks great"'

  r = await client.delete(f"/tasks/{t['id']}/comments/{c['id']}/replies/{reply['id']}", headers=alice)
  assert r.status_code == 200, r.text
  assert r.json()["comments"][0]["replies"] == []
  assert r.json()["activity"][-1]["action"] == 'alice deleted reply: "looks great"'


@pytest.mark.anyio
async def test_comment_edit_and_delete(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice, "Launch")
  bob = await add_member(client, t["id"], alice, "bob")
  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "draft"}, headers=bob)
  c = r.json()["comments"][0]

  r = await client.patch(f"/tasks/{t['id']}/comments/{c['id']}", json={"comment": "hijack"}, headers=alice)
  assert r.status_code == 401
  assert r.json()["detail"] == "Not authorized to edit this comment"

  r = await client.patch(f"/tasks/{t['id']}/comments/{c['id']}", json={"comment": "final"}, headers=bob)
  assert r.status_code == 200, r.text
  assert r.json()["comments"][0]["comment"] == "final"
  assert r.json()["activity"][-1]["action"] == 'bob edited comment from "draft" to "final"'

  # The task owner may remove anyone's comment.
  r = await client.delete(f"/tasks/{t['id']}/comments/{c['id']}", headers=alice)
  assert r.status_code == 200, r.text
  assert r.json()["comments"] == []
  assert r.json()["activity"][-1]["action"] == 'alice deleted comment: "final"'

  r = await client.delete(f"/tasks/{t['id']}/comments/{c['id']}", headers=alice)
  assert r.status_code == 404
  assert r.json()["detail"] == "Comment not found"


@pytest.mark.anyio
async def test_non_member_cannot_comment_or_reply(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice)
  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "mine"}, headers=alice)
  c = r.json()["comments"][0]

  carol = await login(client, "carol")
  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "hi"}, headers=carol)
  assert r.status_code == 401
  r = await client.post(f"/tasks/{t['id']}/comments/{c['id']}/replies", json={"comment": "hi"}, headers=carol)
  assert r.status_code == 401
  r = await client.delete(f"/tasks/{t['id']}/comments/{c['id']}", headers=carol)
  assert r.status_code == 401


@pytest.mark.anyio
async def test_empty_comment_is_rejected(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice)
  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": ""}, headers=alice)
  assert r.status_code == 400
  assert isinstance(r.json()["detail"], str)


@pytest.mark.anyio
async def test_mentions_notify_once_and_skip_author(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  bob = await login(client, "bob")
  t = await create_task(client, alice, "Launch")

  text = "ping @bob and @bob again, also @alice and @nobody"
  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": text}, headers=alice)
  assert r.status_code == 200, r.text

  bob_msgs = [m for m in await _messages(client, bob) if "mentioned you" in m]
  assert bob_msgs == [f"alice mentioned you in Launch: {text}"]
  assert not any("mentioned you" in m for m in await _messages(client, alice))


@pytest.mark.anyio
async def test_edit_notifies_only_newly_mentioned(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  bob = await login(client, "bob")
  carol = await login(client, "carol")
  t = await create_task(client, alice, "Launch")

  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "hi @bob"}, headers=alice)
  c = r.json()["comments"][0]
  r = await client.patch(f"/tasks/{t['id']}/comments/{c['id']}", json={"comment": "hi @bob @carol"}, headers=alice)
  assert r.status_code == 200, r.text

  bob_msgs = [m for m in await _messages(client, bob) if "mentioned you" in m]
  carol_msgs = [m for m in await _messages(client, carol) if "mentioned you" in m]
  assert bob_msgs == ["alice mentioned you in Launch: hi @bob"]
  assert carol_msgs == ["alice mentioned you in Launch: hi @bob @carol"]


@pytest.mark.anyio
async def test_blank_comment_is_rejected(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice)
  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "   "}, headers=alice)
  assert r.status_code == 400
  assert "Comment is required" in r.json()["detail"]

  r = await client.post(f"/tasks/{t['id']}/comments", json={"comment": "kept"}, headers=alice)
  c = r.json()["comments"][0]
  r = await client.patch(f"/tasks/{t['id']}/comments/{c['id']}", json={"comment": "\n\t"}, headers=alice)
  assert r.status_code == 400

  task = (await client.get(f"/tasks/{t['id']}", headers=alice)).json()
  assert [x["comment"] for x in task["comments"]] == ["kept"]
  assert [a["kind"] for a in task["activity"]] == ["task.created", "comment.added"]
