"""实体处理器

把一次探测的结果送入实体状态机，并在确认转换时完成历史记录、
通知和持久化。同一实体的处理由实体锁串行化。
"""

from datetime import datetime
from typing import Callable, List, Optional

from .state_machine import EntityStateMachine, SampleOutcome, resolve_debounce
from .state_manager import StateManager
from ..alerts.gate import NotificationGate
from ..models.monitor_state import (
    EntityMonitorState, MonitoredEndpoint, ProbeSample, StateTransition
)
from ..models.settings import MonitorSettings
from ..probers.base import BaseProber
from ..utils.exceptions import ProbeError, StateMachineError
from ..utils.log_manager import get_logger


class EntityProcessor:
    """单实体处理流程：探测 -> 状态机 -> 通知 -> 持久化"""

    def __init__(self, state_manager: StateManager, prober: BaseProber,
                 gate: NotificationGate,
                 settings_provider: Optional[Callable[[], MonitorSettings]] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        初始化实体处理器

        Args:
            state_manager: 状态管理器
            prober: 端点探测器
            gate: 通知闸门
            settings_provider: 返回当前配置快照的函数
            clock: 时间来源
        """
        self.state_manager = state_manager
        self.prober = prober
        self.gate = gate
        self.settings_provider = settings_provider or MonitorSettings
        self.clock = clock
        self.state_machine = EntityStateMachine()
        self.logger = get_logger('entity_processor')

    async def process_endpoint(self, endpoint: MonitoredEndpoint) -> Optional[SampleOutcome]:
        """
        探测一个端点并把结果应用到其状态上

        Args:
            endpoint: 被监控的端点

        Returns:
            Optional[SampleOutcome]: 样本的处理结果，探测器故障或状态异常时返回None
        """
        if not endpoint.enabled or not endpoint.host:
            return SampleOutcome.IGNORED

        settings = self.settings_provider()
        try:
            reachable = await self.prober.probe(endpoint.host, endpoint.port,
                                                settings.probe_timeout)
        except ProbeError as e:
            self.logger.error(f"探测实体 {endpoint.entity_id} 失败: {e.format_error()}")
            return None

        sample = ProbeSample(entity_id=endpoint.entity_id, observed_at=self.clock(),
                             reachable=reachable)
        return await self.apply_sample(endpoint, sample, settings)

    async def apply_sample(self, endpoint: MonitoredEndpoint, sample: ProbeSample,
                           settings: Optional[MonitorSettings] = None) -> Optional[SampleOutcome]:
        """
        在实体锁内应用样本，并立即检查待定状态是否可以确认

        Args:
            endpoint: 样本对应的端点
            sample: 探测样本
            settings: 配置快照，None时重新获取

        Returns:
            Optional[SampleOutcome]: 样本的处理结果
        """
        if sample.state is None:
            return SampleOutcome.IGNORED

        settings = settings or self.settings_provider()
        entity_id = endpoint.entity_id

        async with self.state_manager.lock_for(entity_id):
            if self.state_manager.is_deconfigured(entity_id):
                self.logger.debug(f"实体 {entity_id} 已取消配置，丢弃样本")
                return SampleOutcome.IGNORED
            state = self.state_manager.get_or_create(entity_id)
            try:
                outcome = self.state_machine.apply_sample(
                    state, sample, endpoint.last_known_state, endpoint.last_changed_at)
                transition = self.state_machine.check_confirmation(
                    state, sample.observed_at, resolve_debounce(settings.debounce_minutes))
            except StateMachineError as e:
                self.logger.error(f"实体 {entity_id} 状态异常，跳过本次处理: {e.format_error()}")
                return None

            if transition:
                await self._handle_transition(state, transition)
            elif outcome in (SampleOutcome.INITIALIZED, SampleOutcome.ADOPTED_KNOWN):
                await self.state_manager.save(entity_id)

        return outcome

    async def confirm_pending(self, now: Optional[datetime] = None) -> List[StateTransition]:
        """
        检查所有待定实体，确认已满debounce窗口的转换

        Args:
            now: 当前时间

        Returns:
            List[StateTransition]: 本次确认的转换
        """
        now = now or self.clock()
        debounce = resolve_debounce(self.settings_provider().debounce_minutes)
        confirmed = []

        for entity_id in self.state_manager.pending_entity_ids():
            async with self.state_manager.lock_for(entity_id):
                state = self.state_manager.get_state(entity_id)
                if state is None:
                    continue
                try:
                    transition = self.state_machine.check_confirmation(state, now, debounce)
                except StateMachineError as e:
                    self.logger.error(f"实体 {entity_id} 状态异常，跳过确认: {e.format_error()}")
                    continue

                if transition:
                    await self._handle_transition(state, transition)
                    confirmed.append(transition)

        return confirmed

    async def _handle_transition(self, state: EntityMonitorState, transition: StateTransition):
        self.state_manager.record_transition(transition)
        await self.gate.notify(state, transition, now=transition.confirmed_at)
        await self.state_manager.save(state.entity_id)
