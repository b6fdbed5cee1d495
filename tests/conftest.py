"""Shared fixtures: manual timers, an in-memory remote store and a cache."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Any

import pytest

from vendorgrid.config.models import AutoSaveSettings
from vendorgrid.db import LocalCache, get_connection
from vendorgrid.errors import NetworkError, NotFoundError, ValidationError
from vendorgrid.models import (
    Column,
    Comment,
    CurrentUser,
    MasterScorecard,
    Role,
    ScorecardRecord,
    Template,
    is_local_id,
)
from vendorgrid.state.session import EditorSession


class FakeTimer:
    """Timer fired by hand from tests."""

    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not (t.cancelled or t.fired)]

    def fire_all(self):
        for timer in list(self.active):
            timer.fire()


class FakeStore:
    """In-memory stand-in for ScorecardStore that records calls."""

    def __init__(self):
        self.records: dict[str, ScorecardRecord] = {}
        self.comments: list[Comment] = []
        self.templates: list[Template] = []
        self.calls: list[tuple[str, Any]] = []
        self.user: CurrentUser | None = CurrentUser(id="u1", role=Role.ADMIN, name="Ada")
        self.offline = False
        self.fail_with: Exception | None = None
        self._ids = itertools.count(100)

    def _check(self):
        if self.offline:
            raise NetworkError("offline")
        if self.fail_with is not None:
            raise self.fail_with

    def calls_named(self, name: str) -> list[Any]:
        return [args for called, args in self.calls if called == name]

    def list_scorecards(self):
        self._check()
        return list(self.records.values())

    def create_scorecard(self, title, payload, is_draft=True):
        self.calls.append(("create_scorecard", (title, payload)))
        self._check()
        now = datetime.now(timezone.utc)
        record = ScorecardRecord(
            id=f"remote-{next(self._ids)}",
            title=title,
            data=payload,
            is_draft=is_draft,
            created_at=now,
            last_modified=now,
        )
        self.records[record.id] = record
        return record

    def update_scorecard(self, scorecard_id, title, payload, is_draft=True):
        self.calls.append(("update_scorecard", (scorecard_id, title, payload)))
        self._check()
        if scorecard_id not in self.records:
            raise NotFoundError(f"Scorecard {scorecard_id} not found")
        record = self.records[scorecard_id].model_copy(
            update={"title": title, "data": payload, "last_modified": datetime.now(timezone.utc)}
        )
        self.records[scorecard_id] = record
        return record

    def delete_scorecard(self, scorecard_id):
        self.calls.append(("delete_scorecard", scorecard_id))
        self._check()
        if self.records.pop(scorecard_id, None) is None:
            raise NotFoundError(f"Scorecard {scorecard_id} not found")

    def list_comments(self, scorecard_id):
        self.calls.append(("list_comments", scorecard_id))
        if is_local_id(scorecard_id):
            return []
        self._check()
        return [c for c in self.comments if c.scorecard_id == scorecard_id]

    def create_comment(self, scorecard_id, row_id, text, scorecard_data=None):
        self.calls.append(("create_comment", (scorecard_id, row_id, text)))
        if is_local_id(scorecard_id) and scorecard_data is None:
            raise ValidationError("local scorecard")
        self._check()
        comment = Comment(
            id=f"c-{next(self._ids)}",
            scorecard_id=scorecard_id,
            row_id=str(row_id),
            author="Ada",
            text=text,
            created_at=datetime.now(timezone.utc),
        )
        self.comments.append(comment)
        return comment

    def update_comment(self, comment_id, text):
        self._check()
        for i, comment in enumerate(self.comments):
            if comment.id == comment_id:
                self.comments[i] = comment.model_copy(update={"text": text})
                return self.comments[i]
        raise NotFoundError(comment_id)

    def delete_comment(self, comment_id):
        self._check()
        self.comments = [c for c in self.comments if c.id != comment_id]

    def list_templates(self):
        self._check()
        return list(self.templates)

    def create_template(self, name, columns: list[Column], rows=None):
        self._check()
        template = Template(id=f"t-{next(self._ids)}", name=name, columns=columns, rows=rows)
        self.templates.append(template)
        return template

    def delete_template(self, template_id):
        self._check()
        self.templates = [t for t in self.templates if t.id != template_id]

    def get_master_scorecard(self):
        self._check()
        return MasterScorecard()

    def get_current_user(self):
        return self.user

    def ping(self):
        return not self.offline


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def cache() -> LocalCache:
    return LocalCache(get_connection(":memory:"))


@pytest.fixture
def session(store, cache, timers) -> EditorSession:
    editor = EditorSession(
        store,
        cache,
        autosave=AutoSaveSettings(debounce_ms=3000),
        timer_factory=timers,
    )
    editor.load()
    return editor
