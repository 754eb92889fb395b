from __future__ import annotations

import json
import os

import pytest
from httpx import AsyncClient

from focusflow.config import settings

from conftest import add_member, create_task, login

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048
PDF = b"%PDF-1.4\n" + b"0" * (1024 * 1024 + 300_000)


@pytest.mark.anyio
async def test_create_requires_auth(client: AsyncClient) -> None:
  r = await client.post("/tasks", data={"title": "x"})
  assert r.status_code == 401, r.text
  assert r.json() == {"detail": "No token provided, unauthorized"}


@pytest.mark.anyio
async def test_create_defaults_and_created_entry(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice, "Write report", description="Q3 numbers")

  assert t["status"] == "pending"
  assert t["priority"] == "low"
  assert t["owner"]["username"] == "alice"
  assert t["assignedTo"] == []
  assert [a["action"] for a in t["activity"]] == ["alice created task Write report"]
  assert t["activity"][0]["kind"] == "task.created"
  assert t["invalidEmails"] == []


@pytest.mark.anyio
async def test_create_requires_title(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post("/tasks", data={"description": "no title"}, headers=alice)
  assert r.status_code == 400, r.text
  assert r.json()["detail"] == "Title is required"


@pytest.mark.anyio
async def test_create_rejects_bad_enum_and_malformed_json(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post("/tasks", data={"title": "x", "priority": "urgent"}, headers=alice)
  assert r.status_code == 400, r.text

  r = await client.post("/tasks", data={"title": "x", "assignedTo": "not json"}, headers=alice)
  assert r.status_code == 400, r.text
  assert r.json()["detail"] == "Invalid assignedTo format"


@pytest.mark.anyio
async def test_attachments_round_trip(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post(
    "/tasks",
    data={"title": "With files"},
    files=[
      ("attachment", ("diagram.png", PNG, "image/png")),
      ("attachment", ("brief.pdf", PDF, "application/pdf")),
    ],
    headers=alice,
  )
  assert r.status_code == 201, r.text
  created = r.json()
  assert created["activity"][1]["action"] == "alice uploaded file(s): diagram.png, brief.pdf"

  fetched = (await client.get(f"/tasks/{created['id']}", headers=alice)).json()
  got = [(a["originalName"], a["type"], a["size"]) for a in fetched["attachment"]]
  assert got == [(a["originalName"], a["type"], a["size"]) for a in created["attachment"]]
  assert got[0] == ("diagram.png", "image", 0.0)
  assert got[1][:2] == ("brief.pdf", "pdf")
  assert got[1][2] == round(len(PDF) / (1024 * 1024), 2)


@pytest.mark.anyio
async def test_attachment_validation(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post(
    "/tasks", data={"title": "x"}, files=[("attachment", ("notes.txt", b"hi", "text/plain"))], headers=alice
  )
  assert r.status_code == 400, r.text

  orig = settings.max_attachment_bytes
  settings.max_attachment_bytes = 10
  try:
    r = await client.post(
      "/tasks", data={"title": "x"}, files=[("attachment", ("big.png", PNG, "image/png"))], headers=alice
    )
    assert r.status_code == 400, r.text
  finally:
    settings.max_attachment_bytes = orig

  many = [("attachment", (f"f{i}.png", b"\x89PNG", "image/png")) for i in range(settings.max_attachments + 1)]
  r = await client.post("/tasks", data={"title": "x"}, files=many, headers=alice)
  assert r.status_code == 400, r.text

  listed = (await client.get("/tasks", headers=alice)).json()
  assert listed == []


@pytest.mark.anyio
async def test_download_attachment(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post(
    "/tasks", data={"title": "dl"}, files=[("attachment", ("pic.png", PNG, "image/png"))], headers=alice
  )
  task_id = r.json()["id"]

  r = await client.get(f"/tasks/download/{task_id}/pic.png", headers=alice)
  assert r.status_code == 200
  assert r.content == PNG
  assert "pic.png" in r.headers["content-disposition"]

  r = await client.get(f"/tasks/download/{task_id}/missing.png", headers=alice)
  assert r.status_code == 404

  bob = await login(client, "bob")
  r = await client.get(f"/tasks/download/{task_id}/pic.png", headers=bob)
  assert r.status_code == 404


@pytest.mark.anyio
async def test_visibility_is_owner_or_accepted_member(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice)
  bob = await login(client, "bob")

  r = await client.get(f"/tasks/{t['id']}", headers=bob)
  assert r.status_code == 404
  assert r.json()["detail"] == "Task not found or you are not authorized to view it"
  assert (await client.get("/tasks", headers=bob)).json() == []

  await add_member(client, t["id"], alice, "bob")
  r = await client.get(f"/tasks/{t['id']}", headers=bob)
  assert r.status_code == 200
  assert [u["username"] for u in r.json()["assignedTo"]] == ["bob"]
  assert [x["id"] for x in (await client.get("/tasks", headers=bob)).json()] == [t["id"]]


@pytest.mark.anyio
async def test_update_fields_and_change_entries(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice, "Plan")
  subtasks = json.dumps([{"title": "  draft  "}, {"title": ""}, {"completed": True}, {"title": "review", "completed": True}])
  r = await client.patch(
    f"/tasks/{t['id']}",
    data={
      "status": "inProgress",
      "priority": "high",
      "title": "Plan v2",
      "dueDate": "2026-12-01",
      "subtask": subtasks,
    },
    headers=alice,
  )
  assert r.status_code == 200, r.text
  body = r.json()
  assert body["title"] == "Plan v2"
  assert body["status"] == "inProgress"
  assert body["priority"] == "high"
  assert body["dueDate"].startswith("2026-12-01")
  assert body["subtask"] == [{"title": "draft", "completed": False}, {"title": "review", "completed": True}]
  actions = [a["action"] for a in body["activity"]]
  assert actions[1:] == [
    "alice changed status from pending to inProgress",
    "alice changed priority from low to high",
  ]

  # Same values again: nothing new is logged.
  r = await client.patch(f"/tasks/{t['id']}", data={"status": "inProgress", "priority": "high"}, headers=alice)
  assert len(r.json()["activity"]) == 3


@pytest.mark.anyio
async def test_update_by_non_member_is_rejected(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice)
  carol = await login(client, "carol")
  r = await client.patch(f"/tasks/{t['id']}", data={"title": "hijack"}, headers=carol)
  assert r.status_code == 401
  assert r.json()["detail"] == "Not authorized to update this task"


@pytest.mark.anyio
async def test_attachment_replace_and_append(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post(
    "/tasks", data={"title": "files"}, files=[("attachment", ("a.png", PNG, "image/png"))], headers=alice
  )
  task_id = r.json()["id"]

  r = await client.patch(
    f"/tasks/{task_id}",
    data={"attachmentOperation": "append"},
    files=[("attachment", ("b.png", PNG, "image/png"))],
    headers=alice,
  )
  assert [a["originalName"] for a in r.json()["attachment"]] == ["a.png", "b.png"]

  r = await client.patch(
    f"/tasks/{task_id}", files=[("attachment", ("c.pdf", b"%PDF-1.4", "application/pdf"))], headers=alice
  )
  assert [a["originalName"] for a in r.json()["attachment"]] == ["c.pdf"]
  r = await client.get(f"/tasks/download/{task_id}/a.png", headers=alice)
  assert r.status_code == 404


@pytest.mark.anyio
async def test_image_update_notifies_other_members(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  t = await create_task(client, alice, "Mockups")
  bob = await add_member(client, t["id"], alice, "bob")

  r = await client.patch(
    f"/tasks/{t['id']}", files=[("attachment", ("home.png", PNG, "image/png"))], headers=bob
  )
  assert r.status_code == 200, r.text

  alice_msgs = [n["message"] for n in (await client.get("/notifications", headers=alice)).json()]
  assert "bob updated image(s) home.png for task Mockups." in alice_msgs
  bob_msgs = [n["message"] for n in (await client.get("/notifications", headers=bob)).json()]
  assert not any("updated image" in m for m in bob_msgs)


@pytest.mark.anyio
async def test_delete_is_owner_only_and_cascades(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.post(
    "/tasks", data={"title": "Temp"}, files=[("attachment", ("x.png", PNG, "image/png"))], headers=alice
  )
  t = r.json()
  public_id = t["attachment"][0]["publicId"]
  bob = await add_member(client, t["id"], alice, "bob")

  r = await client.delete(f"/tasks/{t['id']}", headers=bob)
  assert r.status_code == 401
  assert r.json()["detail"] == "Not authorized to delete this task"

  r = await client.delete(f"/tasks/{t['id']}", headers=alice)
  assert r.status_code == 200, r.text
  assert r.json() == {"message": "Task deleted successfully"}

  assert (await client.get(f"/tasks/{t['id']}", headers=alice)).status_code == 404
  me = (await client.get("/auth/me", headers=bob)).json()["data"]
  assert me["assignedTasks"] == []
  assert me["invitations"] == []
  assert not os.path.exists(os.path.join(settings.upload_dir, public_id))


@pytest.mark.anyio
async def test_delete_missing_task(client: AsyncClient) -> None:
  alice = await login(client, "alice")
  r = await client.delete("/tasks/does-not-exist", headers=alice)
  assert r.status_code == 404
  assert r.json() == {"detail": "Task not found"}
