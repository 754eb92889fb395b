from __future__ import annotations

import pytest

from focusflow import activity
from focusflow.activity import render_activity
from focusflow.mentions import extract_mentions, new_mentions


@pytest.mark.anyio
async def test_render_known_kinds() -> None:
  assert render_activity(activity.TASK_CREATED, {"user": "alice", "title": "Plan"}) == "alice created task Plan"
  assert (
    render_activity(activity.FILES_UPLOADED, {"user": "bob", "names": ["a.png", "b.pdf"]})
    == "bob uploaded file(s): a.png, b.pdf"
  )
  assert (
    render_activity(activity.MEMBERS_INVITED, {"user": "alice", "names": ["bob", "carol"], "title": "Plan"})
    == "alice invited bob, carol to join Plan"
  )
  assert (
    render_activity(activity.COMMENT_EDITED, {"user": "bob", "old": "a", "new": "b"})
    == 'bob edited comment from "a" to "b"'
  )


@pytest.mark.anyio
async def test_render_tolerates_missing_fields() -> None:
  assert render_activity(activity.TASK_CREATED, None) == "Unknown created task "
  assert render_activity("custom.kind", {"user": "dana"}) == "dana custom.kind"


@pytest.mark.anyio
async def test_extract_mentions_keeps_first_occurrence_order() -> None:
  assert extract_mentions("hey @bob, @carol and @bob again") == ["bob", "carol"]
  assert extract_mentions("mail me at x@y") == ["y"]
  assert extract_mentions(None) == []


@pytest.mark.anyio
async def test_new_mentions_only_reports_additions() -> None:
  assert new_mentions("hi @bob", "hi @bob @carol") == ["carol"]
  assert new_mentions("hi @bob @carol", "hi @carol") == []
  assert new_mentions(None, "@dana") == ["dana"]
