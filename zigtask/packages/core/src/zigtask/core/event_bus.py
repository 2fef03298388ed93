"""EventBus -- 进程内任务事件发布/订阅

按事件类型划分 topic，publish 同步地按注册顺序调用当前订阅者。
单个订阅者抛出的异常会被记录并吞掉，不影响其他订阅者，也不会传回发布方。
无持久化、无回放：晚于事件注册的订阅者收不到该事件。
实例随应用 lifespan 创建与销毁，通过依赖注入传递。
"""

from collections.abc import Callable

import structlog

from .models.enums import TaskEventType
from .models.event import TaskEvent

log = structlog.get_logger()

EventCallback = Callable[[TaskEvent], None]


class Subscription:
    """订阅句柄 -- unsubscribe() 可重复调用"""

    def __init__(
        self,
        bus: "EventBus",
        event_type: TaskEventType | None,
        callback: EventCallback,
        seq: int,
    ) -> None:
        self._bus = bus
        self.event_type = event_type
        self.callback = callback
        self.seq = seq
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus._remove(self)
            self.active = False


class EventBus:
    """任务事件总线"""

    def __init__(self) -> None:
        # None 键为订阅全部事件类型的 topic
        self._topics: dict[TaskEventType | None, list[Subscription]] = {}
        self._order = 0

    def subscribe(
        self,
        event_type: TaskEventType | None,
        callback: EventCallback,
    ) -> Subscription:
        """订阅指定类型的事件

        Args:
            event_type: 事件类型，None 表示订阅全部类型
            callback: 同步回调，接收 TaskEvent

        Returns:
            Subscription 句柄
        """
        # 全局序号保证跨 topic 的注册顺序
        self._order += 1
        subscription = Subscription(self, event_type, callback, self._order)
        self._topics.setdefault(event_type, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._topics.get(subscription.event_type)
        if not subscribers:
            return
        try:
            subscribers.remove(subscription)
        except ValueError:
            return
        if not subscribers:
            del self._topics[subscription.event_type]

    def subscriber_count(self, event_type: TaskEventType | None = None) -> int:
        """指定 topic 的订阅者数量"""
        return len(self._topics.get(event_type, []))

    def publish(self, event: TaskEvent) -> int:
        """向订阅者投递事件

        Args:
            event: 要发布的任务事件

        Returns:
            成功处理该事件的订阅者数量
        """
        targets = [
            *self._topics.get(event.type, []),
            *self._topics.get(None, []),
        ]
        # 快照后按注册顺序投递，回调内部增删订阅不影响本次投递
        targets.sort(key=lambda s: s.seq)

        delivered = 0
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(event)
                delivered += 1
            except Exception as e:
                log.error(
                    "event_subscriber_failed",
                    event_type=event.type.value,
                    task_id=event.task_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        return delivered

    def clear(self) -> None:
        """移除全部订阅（应用关闭时调用）"""
        for subscribers in list(self._topics.values()):
            for subscription in subscribers:
                subscription.active = False
        self._topics.clear()
