"""提醒调度器

# 提醒链
每个会话维护一条可取消的提醒链，其主要分为以下几个阶段：
1. 进入空闲：收到 session.idle 后布置首个定时器，延迟为 initial_delay_seconds。
2. 触发提醒：定时器到期后调用投递器，完成后 attempt_count 加一。
3. 追加提醒：若启用了追加提醒且未用完预算，按指数退避布置下一个定时器，否则进入 exhausted。
4. 取消：任何操作者活动都会立即取消整条提醒链 (cancelled)，直到下一次进入空闲。

# 竞态
布置定时器时记下当时的 generation，触发时先比对；取消或重启提醒链都会让 generation 自增，
来不及撤销的定时器触发后会发现自己已过期而直接放弃。
投递在会话锁之外进行，投递完成后再比对一次 generation，投递期间到来的活动同样能阻止后续提醒。
"""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

from idle_nudge.config.reminder_config import ReminderConfig, coerce_reminder_config
from idle_nudge.core.activity_clock import ActivityClock
from idle_nudge.core.backoff import reminder_delay, should_schedule_follow_up
from idle_nudge.datamodel import DeliveryResult, ReminderState, ReminderStatus, SessionId
from idle_nudge.dispatch.base import NotificationDispatcher
from idle_nudge.events import bus, E
from idle_nudge.logger import logger
from idle_nudge.metrics import RuntimeMetrics, runtime_metrics
from idle_nudge.utils import now_epoch

__all__ = ["ReminderScheduler", "configure_scheduler", "require_scheduler"]


class ReminderScheduler:
    def __init__(
        self,
        config: Union[ReminderConfig, Mapping[str, Any], None],
        dispatcher: NotificationDispatcher,
        activity_clock: Optional[ActivityClock] = None,
        metrics: Optional[RuntimeMetrics] = None,
        time_source: Optional[Callable[[], float]] = None,
    ) -> None:
        # 配置错误在这里直接抛出 ConfigError, 不会拖到提醒链运行中
        self.config = coerce_reminder_config(config)
        self.dispatcher = dispatcher
        self.activity_clock = activity_clock or ActivityClock()
        self.metrics = metrics or runtime_metrics
        self._now = time_source or now_epoch
        self._states: Dict[SessionId, ReminderState] = {}
        self._fire_tasks: Set[asyncio.Task[None]] = set()
        self._running = False

        if not self.config.reminders_enabled:
            logger.warning("空闲提醒未启用 (enabled=false 或未开启任何投递方式)")

    # ------------------------------------------------------------------
    # 状态查询
    # ------------------------------------------------------------------

    def get_session(self, session_id: SessionId) -> Optional[ReminderState]:
        return self._states.get(session_id)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [state.snapshot() for state in self._states.values()]

    def get_status(self) -> Dict[str, object]:
        by_status = Counter(state.status.value for state in self._states.values())
        return {
            "running": self._running,
            "enabled": self.config.reminders_enabled,
            "sessions": len(self._states),
            "by_status": dict(by_status),
            "in_flight_fires": len(self._fire_tasks),
            "initial_delay_seconds": self.config.initial_delay_seconds,
            "max_follow_up_reminders": self.config.max_follow_up_reminders,
            "follow_ups_enabled": self.config.enable_follow_up_reminders,
            "backoff_multiplier": self.config.reminder_backoff_multiplier,
        }

    # ------------------------------------------------------------------
    # 入站事件
    # ------------------------------------------------------------------

    async def on_session_idle(self, session_id: SessionId) -> bool:
        """会话进入空闲, 开启新的提醒周期时返回 True

        idle_since 取自调度器自己的时钟, 与过期活动的判断使用同一时间基准。
        """
        with logger.contextualize(session=session_id):
            if not self.config.reminders_enabled:
                logger.trace("提醒未启用, 忽略空闲事件")
                return False

            state = self._states.get(session_id)
            if state is None:
                state = ReminderState(session_id=session_id)
                self._states[session_id] = state

            async with state.lock:
                if self._states.get(session_id) is not state:
                    logger.trace("会话在等待期间已结束, 忽略空闲事件")
                    return False

                if state.status is not ReminderStatus.IDLE and self.activity_clock.is_idle(session_id):
                    logger.trace(f"空闲事件重复 (status={state.status.value}), 本周期内无新活动, 忽略")
                    return False

                self._start_episode(state, self._now())
                return True

    async def on_activity(
        self,
        session_id: SessionId,
        role: str = "user",
        at: Optional[float] = None,
    ) -> bool:
        """操作者活动, 取消了进行中的提醒链时返回 True

        角色过滤由事件源完成, 这里收到的都视为操作者活动。
        """
        state = self._states.get(session_id)
        if state is None:
            # 没有提醒状态的会话无需记录, 下次空闲本来就是新周期
            return False

        now = self._now() if at is None else at
        with logger.contextualize(session=session_id):
            async with state.lock:
                if self._states.get(session_id) is not state:
                    return False

                if at is not None and state.idle_since is not None and at < state.idle_since:
                    # 例如对空闲之前的旧消息的更新
                    logger.debug(f"活动早于本次空闲 (at={at}, idle_since={state.idle_since}), 忽略")
                    return False

                self.activity_clock.mark_active(session_id, now)
                return self._cancel(state, reason=f"role={role}")

    async def on_session_end(self, session_id: SessionId) -> bool:
        state = self._states.pop(session_id, None)
        self.activity_clock.forget(session_id)
        if state is None:
            return False

        with logger.contextualize(session=session_id):
            async with state.lock:
                self._cancel_timer(state)
                state.generation += 1
                state.status = ReminderStatus.IDLE
                state.next_fire_at = None

            logger.info("会话已结束, 提醒状态已丢弃")
        return True

    # ------------------------------------------------------------------
    # 状态机 (调用方须持有 state.lock)
    # ------------------------------------------------------------------

    def _start_episode(self, state: ReminderState, now: float) -> None:
        self._cancel_timer(state)
        state.generation += 1
        state.status = ReminderStatus.SCHEDULED
        state.attempt_count = 0
        state.idle_since = now
        state.last_fired_at = None
        self.activity_clock.mark_idle(state.session_id, now)
        self.metrics.record_episode_started()

        delay = reminder_delay(0, self.config.initial_delay_seconds, self.config.reminder_backoff_multiplier)
        self._arm(state, delay)
        logger.info(f"进入空闲, {delay:.2f}s 后首次提醒 (generation={state.generation})")

    def _cancel(self, state: ReminderState, reason: str) -> bool:
        was_live = state.is_live
        self._cancel_timer(state)
        # 无论是否有定时器都要自增, 让投递中的触发也失效
        state.generation += 1
        state.next_fire_at = None
        if not was_live:
            return False

        state.status = ReminderStatus.CANCELLED
        self.metrics.record_episode_cancelled()
        logger.info(f"有新活动 ({reason}), 已取消提醒链, 本周期共提醒 {state.attempt_count} 次")
        return True

    def _arm(self, state: ReminderState, delay: float) -> None:
        loop = asyncio.get_running_loop()
        state.pending_timer = loop.call_later(delay, self._on_timer, state, state.generation)
        state.next_fire_at = self._now() + delay

    @staticmethod
    def _cancel_timer(state: ReminderState) -> None:
        if state.pending_timer is not None:
            state.pending_timer.cancel()
            state.pending_timer = None

    # ------------------------------------------------------------------
    # 定时器触发
    # ------------------------------------------------------------------

    def _on_timer(self, state: ReminderState, generation: int) -> None:
        # 事件循环回调, 只负责把带 generation 的触发消息交给协程处理
        task = asyncio.get_running_loop().create_task(
            self._fire(state, generation),
            name=f"reminder-{state.session_id}-{generation}",
        )
        self._fire_tasks.add(task)
        task.add_done_callback(self._on_fire_done)

    def _on_fire_done(self, task: "asyncio.Task[None]") -> None:
        self._fire_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"提醒触发任务异常: task={task.get_name()}, error={exc}")

    async def _fire(self, state: ReminderState, generation: int) -> None:
        with logger.contextualize(session=state.session_id):
            async with state.lock:
                if generation != state.generation or state.status is not ReminderStatus.SCHEDULED:
                    self.metrics.record_stale_timer()
                    logger.trace(f"过期的定时器触发: generation={generation}, current={state.generation}")
                    return
                state.pending_timer = None
                state.next_fire_at = None
                state.status = ReminderStatus.FIRING
                attempt_index = state.attempt_count

            logger.info(f"触发提醒 {attempt_index + 1}/{self.config.max_follow_up_reminders}")
            result = await self._deliver(state.session_id, attempt_index)
            self.metrics.record_reminder(result.succeeded)
            if not result.succeeded:
                logger.warning(f"第 {attempt_index + 1} 次提醒投递失败, 提醒链照常推进: {result.error}")

            async with state.lock:
                state.last_fired_at = self._now()
                if generation != state.generation or state.status is not ReminderStatus.FIRING:
                    logger.info("提醒投递期间已有新活动或会话已结束, 不再安排后续提醒")
                    return

                state.attempt_count += 1
                if should_schedule_follow_up(
                    state.attempt_count,
                    self.config.max_follow_up_reminders,
                    self.config.enable_follow_up_reminders,
                ):
                    delay = reminder_delay(
                        state.attempt_count,
                        self.config.initial_delay_seconds,
                        self.config.reminder_backoff_multiplier,
                    )
                    state.status = ReminderStatus.SCHEDULED
                    self._arm(state, delay)
                    logger.info(f"已提醒 {state.attempt_count} 次, {delay:.2f}s 后追加提醒")
                else:
                    state.status = ReminderStatus.EXHAUSTED
                    self.metrics.record_episode_exhausted()
                    logger.info(f"提醒预算已用完 ({state.attempt_count} 次), 等待新的空闲周期")

    async def _deliver(self, session_id: SessionId, attempt_index: int) -> DeliveryResult:
        candidates = self.config.messages_for_attempt(attempt_index)
        try:
            result = await self.dispatcher.deliver_reminder(session_id, attempt_index, candidates)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.opt(exception=e).error(f"第 {attempt_index + 1} 次提醒投递异常: {e}")
            return DeliveryResult(succeeded=False, error=str(e))

        if not isinstance(result, DeliveryResult):
            result = DeliveryResult(succeeded=bool(result))
        return result


    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    async def run_loop(self, shutdown_event: asyncio.Event) -> None:
        self._running = True
        logger.info("提醒调度器已启动")
        try:
            while not shutdown_event.is_set():
                await asyncio.sleep(1)
        finally:
            await self.shutdown()
            logger.info("提醒调度器已关闭")

    async def shutdown(self) -> None:
        self._running = False
        for state in self._states.values():
            self._cancel_timer(state)
            state.generation += 1

        tasks = list(self._fire_tasks)
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.error(f"关闭提醒任务时发生异常: task={task.get_name()}, error={result}")

        self._states.clear()
        await self.dispatcher.aclose()


_scheduler: ReminderScheduler | None = None


def configure_scheduler(scheduler: ReminderScheduler | None) -> None:
    global _scheduler
    _scheduler = scheduler


def require_scheduler() -> ReminderScheduler:
    if _scheduler is None:
        raise RuntimeError("ReminderScheduler 尚未配置，请先调用 configure_scheduler()")
    return _scheduler


@bus.on(E.SESSION_IDLE)
async def handle_session_idle(session_id: SessionId) -> None:
    scheduler = require_scheduler()
    scheduler.metrics.record_event_in()
    await scheduler.on_session_idle(session_id)


@bus.on(E.SESSION_ACTIVITY)
async def handle_session_activity(session_id: SessionId, role: str = "user", at: float | None = None) -> None:
    scheduler = require_scheduler()
    scheduler.metrics.record_event_in()
    await scheduler.on_activity(session_id, role=role, at=at)


@bus.on(E.SESSION_END)
async def handle_session_end(session_id: SessionId) -> None:
    scheduler = require_scheduler()
    scheduler.metrics.record_event_in()
    await scheduler.on_session_end(session_id)
