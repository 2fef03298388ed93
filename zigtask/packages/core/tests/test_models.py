"""Domain Models 单元测试

测试内容：
1. 枚举取值与事件名映射
2. Task 序列化（camelCase、UTC）
3. TaskFilter 内存判断
4. 事件 payload 与反解析
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from zigtask.core.models import (
    STATUS_ORDER,
    WS_EVENT_NAMES,
    StoredUser,
    Task,
    TaskDeletedEvent,
    TaskEventType,
    TaskFilter,
    TaskPriority,
    TasksByStatus,
    TaskStatus,
    TaskStatusChangedEvent,
    TaskUpdate,
    is_task_event_name,
    parse_ws_event,
)

_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def _task(task_id: str, **overrides) -> Task:
    fields = {
        "id": task_id,
        "title": "Write report",
        "user_id": "01JUSERA000000000000000000",
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    fields.update(overrides)
    return Task(**fields)


class TestEnums:
    """枚举测试"""

    def test_status_values(self):
        """状态值与看板列一致"""
        assert [s.value for s in STATUS_ORDER] == ["todo", "in_progress", "done"]

    def test_priority_from_string(self):
        assert TaskPriority("high") == TaskPriority.HIGH

    def test_every_event_type_has_ws_name(self):
        """每种事件类型都有实时通道事件名"""
        assert set(WS_EVENT_NAMES) == set(TaskEventType)
        assert WS_EVENT_NAMES[TaskEventType.STATUS_CHANGED] == "taskStatusChanged"


class TestTaskModel:
    """Task 模型测试"""

    def test_defaults(self):
        """缺省状态 todo、优先级 medium"""
        task = _task("01JTASK0000000000000000001")
        assert task.status == TaskStatus.TODO
        assert task.priority == TaskPriority.MEDIUM
        assert task.description is None

    def test_dump_uses_camel_case(self):
        """对外 JSON 使用 camelCase"""
        data = _task("01JTASK0000000000000000001", due_date=_NOW).model_dump(
            mode="json", by_alias=True
        )
        assert "userId" in data
        assert "createdAt" in data
        assert "dueDate" in data
        assert "user_id" not in data

    def test_accepts_camel_and_snake_input(self):
        payload = {
            "id": "01JTASK0000000000000000001",
            "title": "t",
            "userId": "u1",
            "createdAt": "2025-03-01T12:00:00Z",
            "updated_at": "2025-03-01T12:00:00+00:00",
        }
        task = Task.model_validate(payload)
        assert task.user_id == "u1"
        assert task.created_at == task.updated_at

    def test_naive_and_offset_datetimes_normalised_to_utc(self):
        """无时区视为 UTC，有时区换算为 UTC"""
        naive = _task("01JTASK0000000000000000001", due_date=datetime(2025, 3, 2, 8, 0))
        assert naive.due_date.tzinfo == UTC

        plus8 = timezone(timedelta(hours=8))
        shifted = _task(
            "01JTASK0000000000000000002",
            due_date=datetime(2025, 3, 2, 8, 0, tzinfo=plus8),
        )
        assert shifted.due_date == datetime(2025, 3, 2, 0, 0, tzinfo=UTC)
        assert shifted.due_date.utcoffset() == timedelta(0)

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            _task("01JTASK0000000000000000001", status="archived")

    def test_update_tracks_explicit_null(self):
        """显式 null 出现在 exclude_unset 结果中，未提供的字段不出现"""
        patch = TaskUpdate.model_validate({"description": None})
        assert patch.model_dump(exclude_unset=True) == {"description": None}

    def test_stored_user_hides_password_hash(self):
        user = StoredUser(
            id="u1",
            email="a@example.com",
            password_hash="secret-hash",
            created_at=_NOW,
            updated_at=_NOW,
        )
        assert "password_hash" not in user.model_dump()
        assert "secret-hash" not in repr(user)
        assert not hasattr(user.public(), "password_hash")


class TestTaskFilter:
    """TaskFilter 内存判断"""

    def test_empty_filter_matches_everything(self):
        task_filter = TaskFilter()
        assert task_filter.is_empty()
        assert task_filter.matches(_task("01JTASK0000000000000000001"))

    def test_search_is_case_insensitive_over_title_and_description(self):
        task_filter = TaskFilter(search="REPORT")
        assert task_filter.matches(_task("1", title="Write report"))
        assert task_filter.matches(_task("2", title="x", description="quarterly Report due"))
        assert not task_filter.matches(_task("3", title="Groceries"))

    def test_search_handles_non_ascii(self):
        task_filter = TaskFilter(search="STRASSE")
        assert task_filter.matches(_task("1", title="Hauptstraße"))

    def test_conjunction_of_predicates(self):
        task_filter = TaskFilter(search="report", priority=TaskPriority.HIGH)
        assert task_filter.matches(_task("1", priority=TaskPriority.HIGH))
        assert not task_filter.matches(_task("2", priority=TaskPriority.LOW))

    def test_created_range_is_inclusive(self):
        task_filter = TaskFilter(date_from=_NOW, date_to=_NOW)
        assert task_filter.matches(_task("1"))
        assert not task_filter.matches(_task("2", created_at=_NOW + timedelta(seconds=1)))


class TestTasksByStatus:
    def test_partition_preserves_order(self):
        tasks = [
            _task("3", status=TaskStatus.DONE),
            _task("2", status=TaskStatus.TODO),
            _task("1", status=TaskStatus.TODO),
        ]
        grouped = TasksByStatus.partition(tasks)
        assert [t.id for t in grouped.todo] == ["2", "1"]
        assert [t.id for t in grouped.done] == ["3"]
        assert grouped.in_progress == []
        assert {t.id for t in grouped.all_tasks()} == {"1", "2", "3"}


class TestTaskEvents:
    """事件 payload 与反解析"""

    def test_status_changed_payload(self):
        task = _task("01JTASK0000000000000000001", status=TaskStatus.IN_PROGRESS)
        event = TaskStatusChangedEvent(
            task_id=task.id,
            user_id=task.user_id,
            timestamp=_NOW,
            task=task,
            old_status=TaskStatus.TODO,
            new_status=TaskStatus.IN_PROGRESS,
        )
        assert event.ws_event_name == "taskStatusChanged"
        payload = event.to_payload()
        assert payload["action"] == "status_changed"
        assert payload["oldStatus"] == "todo"
        assert payload["newStatus"] == "in_progress"
        assert payload["task"]["status"] == "in_progress"

        parsed = parse_ws_event(event.ws_event_name, payload)
        assert isinstance(parsed, TaskStatusChangedEvent)
        assert parsed.task == task
        assert parsed.old_status == TaskStatus.TODO

    def test_deleted_payload_has_no_task(self):
        event = TaskDeletedEvent(task_id="t1", user_id="u1", timestamp=_NOW)
        payload = event.to_payload()
        assert "task" not in payload
        assert payload["action"] == "deleted"
        assert isinstance(parse_ws_event("taskDeleted", payload), TaskDeletedEvent)

    def test_unknown_event_name(self):
        assert not is_task_event_name("authenticated")
        with pytest.raises(ValueError):
            parse_ws_event("authenticated", {})
