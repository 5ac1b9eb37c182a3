"""实体状态机模块

把带噪声的探测样本转换为少量可信的状态转换。状态机只做内存计算，
不做任何I/O，调用方负责持久化和通知。
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from ..models.monitor_state import (
    EntityMonitorState, PowerState, ProbeSample, StateTransition
)
from ..utils.exceptions import StateMachineError
from ..utils.log_manager import get_logger

# debounce配置为0时使用的最小稳定窗口，用来过滤单次采样噪声
MIN_STABILIZATION_WINDOW = timedelta(seconds=30)


def resolve_debounce(debounce_minutes: Optional[float]) -> timedelta:
    """
    把运维配置的debounce分钟数转换为确认窗口

    0（或未配置、负数）不表示关闭debounce，而是使用最小稳定窗口。

    Args:
        debounce_minutes: 配置的分钟数

    Returns:
        timedelta: 确认窗口
    """
    if not debounce_minutes or debounce_minutes <= 0:
        return MIN_STABILIZATION_WINDOW
    return timedelta(minutes=debounce_minutes)


class SampleOutcome(Enum):
    """样本对状态的影响"""
    IGNORED = 'ignored'                  # 未配置，不记录
    INITIALIZED = 'initialized'          # UNKNOWN -> 采用样本
    ADOPTED_KNOWN = 'adopted_known'      # UNKNOWN -> 采用所有者记录中的状态
    STABLE = 'stable'                    # 与当前状态一致
    FLAP_CANCELLED = 'flap_cancelled'    # 回到当前状态，取消待定
    WAITING = 'waiting'                  # 与待定状态一致，继续等待
    PENDING_STARTED = 'pending_started'  # 开始新的待定窗口


class EntityStateMachine:
    """单个实体的去抖动状态机

    规则：
    1. UNKNOWN时直接采用样本（或所有者记录中的最后状态），不通知
    2. 样本等于当前状态：取消待定状态，如有待定则计为一次抖动
    3. 样本等于待定状态：继续等待
    4. 样本与两者都不同：开始待定窗口，记录抖动
    5. 待定状态持续满debounce窗口后确认为新的稳定状态
    """

    def __init__(self):
        self.logger = get_logger('state_machine')

    def apply_sample(self, state: EntityMonitorState, sample: ProbeSample,
                     last_known_state: Optional[PowerState] = None,
                     last_changed_at: Optional[datetime] = None) -> SampleOutcome:
        """
        把一个探测样本应用到实体状态上

        Args:
            state: 实体状态（原地修改）
            sample: 探测样本
            last_known_state: 所有者记录中的最后供电状态
            last_changed_at: 该状态的变化时间

        Returns:
            SampleOutcome: 样本产生的效果

        Raises:
            StateMachineError: 实体状态违反不变量
        """
        observed = sample.state
        if observed is None:
            return SampleOutcome.IGNORED

        self._check_invariants(state)

        now = sample.observed_at
        state.last_probe_at = now
        state.last_probe_ok = sample.reachable
        state.probe_count += 1
        if sample.reachable:
            state.reachable_count += 1

        if state.current_state == PowerState.UNKNOWN:
            state.pending_state = None
            state.pending_since = None
            state.instability_started_at = None
            state.switch_count = 0

            if last_known_state in (PowerState.ON, PowerState.OFF):
                state.current_state = last_known_state
                state.last_stable_at = state.last_stable_at or last_changed_at
                self.logger.info(
                    f"实体 {state.entity_id} 采用已记录的状态: {last_known_state.value}")
                return SampleOutcome.ADOPTED_KNOWN

            state.current_state = observed
            self.logger.info(f"实体 {state.entity_id} 初始状态: {observed.value}")
            return SampleOutcome.INITIALIZED

        if observed == state.current_state:
            if state.pending_state is None:
                return SampleOutcome.STABLE

            state.switch_count += 1
            self.logger.info(
                f"实体 {state.entity_id} 取消待定状态 {state.pending_state.value}，"
                f"回到 {observed.value} (抖动 {state.switch_count} 次)")
            state.pending_state = None
            state.pending_since = None
            return SampleOutcome.FLAP_CANCELLED

        if observed == state.pending_state:
            return SampleOutcome.WAITING

        if state.instability_started_at is None:
            state.instability_started_at = now
            state.switch_count = 1
            self.logger.info(
                f"实体 {state.entity_id} 开始不稳定: "
                f"{state.current_state.value} -> {observed.value}")
        else:
            state.switch_count += 1
            self.logger.info(
                f"实体 {state.entity_id} 第 {state.switch_count} 次切换到 {observed.value}")

        state.pending_state = observed
        state.pending_since = now
        return SampleOutcome.PENDING_STARTED

    def check_confirmation(self, state: EntityMonitorState, now: datetime,
                           debounce: timedelta) -> Optional[StateTransition]:
        """
        检查待定状态是否已满debounce窗口，满足则确认转换

        Args:
            state: 实体状态（原地修改）
            now: 当前时间
            debounce: 确认窗口

        Returns:
            Optional[StateTransition]: 确认的转换事件，未确认返回None

        Raises:
            StateMachineError: 实体状态违反不变量
        """
        if state.pending_state is None:
            return None

        self._check_invariants(state)

        if now - state.pending_since < debounce:
            return None

        return self._confirm(state, now)

    def remaining_debounce(self, state: EntityMonitorState, now: datetime,
                           debounce: timedelta) -> timedelta:
        """待定状态距离确认还剩多久，没有待定状态返回0"""
        if state.pending_state is None or state.pending_since is None:
            return timedelta(0)
        return max(timedelta(0), debounce - (now - state.pending_since))

    def _confirm(self, state: EntityMonitorState, now: datetime) -> StateTransition:
        old_state = state.current_state
        new_state = state.pending_state

        duration = None
        if state.last_stable_at is not None:
            duration = now - state.last_stable_at

        transition = StateTransition(
            entity_id=state.entity_id,
            old_state=old_state,
            new_state=new_state,
            confirmed_at=now,
            pending_since=state.pending_since,
            duration_in_previous_state=duration,
            switch_count=state.switch_count,
            instability_started_at=state.instability_started_at,
        )

        state.current_state = new_state
        state.last_stable_at = now
        state.pending_state = None
        state.pending_since = None
        state.instability_started_at = None
        state.switch_count = 0

        self.logger.warning(
            f"实体 {state.entity_id} 状态确认: {old_state.value} -> {new_state.value} "
            f"(抖动 {transition.switch_count} 次)")
        return transition

    @staticmethod
    def _check_invariants(state: EntityMonitorState):
        if state.pending_state is not None:
            if state.pending_state == state.current_state:
                raise StateMachineError(
                    f"待定状态与当前状态相同: {state.pending_state.value}",
                    entity_id=state.entity_id)
            if state.pending_state == PowerState.UNKNOWN:
                raise StateMachineError("待定状态不能是unknown", entity_id=state.entity_id)
            if state.pending_since is None:
                raise StateMachineError("待定状态缺少开始时间", entity_id=state.entity_id)

        if state.instability_started_at is not None and state.switch_count < 1:
            raise StateMachineError(
                f"不稳定期间切换次数无效: {state.switch_count}", entity_id=state.entity_id)
