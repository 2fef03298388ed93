"""任务路由 -- 全部需要 bearer token，只能访问本人任务

POST   /tasks:            创建任务，201。
GET    /tasks:            列表查询，支持 status / priority / search / dateFrom / dateTo 筛选。
GET    /tasks/by-status:  按状态分组 {todo, in_progress, done}。
GET    /tasks/{task_id}:  任务详情，不存在或非本人返回 404。
PATCH  /tasks/{task_id}:  部分更新。
DELETE /tasks/{task_id}:  删除。
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from zigtask.core.exceptions import ValidationError
from zigtask.core.models import (
    Task,
    TaskCreate,
    TaskFilter,
    TaskPriority,
    TasksByStatus,
    TaskStatus,
    TaskUpdate,
    User,
    ensure_utc,
)

from ..deps import get_current_user, get_task_service
from ..services.task_service import TaskService

router = APIRouter()


def _parse_bound(value: str | None, name: str) -> datetime | None:
    """解析时间范围参数；仅日期（YYYY-MM-DD）视为当天 UTC 零点"""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise ValidationError(f"{name} must be an ISO 8601 date or datetime") from e


@router.post("/tasks", status_code=201, response_model=Task)
async def create_task(
    body: TaskCreate,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """创建任务，status / priority 缺省为 todo / medium"""
    return await service.create(user.id, body)


@router.get("/tasks", response_model=list[Task])
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    priority: TaskPriority | None = Query(default=None, description="按优先级筛选"),
    search: str | None = Query(default=None, description="标题或描述子串，大小写不敏感"),
    date_from: str | None = Query(default=None, alias="dateFrom", description="created_at 下界"),
    date_to: str | None = Query(default=None, alias="dateTo", description="created_at 上界"),
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """查询任务列表，按 created_at 倒序"""
    task_filter = TaskFilter(
        status=status,
        priority=priority,
        search=search or None,
        date_from=_parse_bound(date_from, "dateFrom"),
        date_to=_parse_bound(date_to, "dateTo"),
    )
    return await service.list(user.id, task_filter)


@router.get("/tasks/by-status", response_model=TasksByStatus)
async def get_tasks_by_status(
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """按状态分组查询（看板初始加载）"""
    return await service.get_grouped_by_status(user.id)


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(
    task_id: str,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """查询单个任务"""
    return await service.get_one(task_id, user.id)


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """部分更新任务（未提供的字段保持不变）"""
    return await service.update(task_id, user.id, body)


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """删除任务"""
    await service.remove(task_id, user.id)
    return {"taskId": task_id, "deleted": True}
