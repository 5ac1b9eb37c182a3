"""通知消息模板渲染"""

import json
from typing import Dict, Any, Optional

from ..models.monitor_state import PowerState, StateTransition
from ..utils.duration import format_duration
from ..utils.exceptions import NotificationError, ErrorCode

DEFAULT_TEMPLATES = {
    PowerState.ON: "🟢 {{time}} 来电了\n🕓 停电持续了 {{duration}}",
    PowerState.OFF: "🔴 {{time}} 停电了\n🕓 供电持续了 {{duration}}",
}


def build_template_vars(transition: StateTransition) -> Dict[str, str]:
    """
    准备模板变量

    Args:
        transition: 已确认的状态转换

    Returns:
        Dict[str, str]: 变量名到文本的映射
    """
    confirmed_at = transition.confirmed_at
    return {
        'entity_id': str(transition.entity_id),
        'old_state': transition.old_state.value,
        'new_state': transition.new_state.value,
        'time': confirmed_at.strftime('%H:%M'),
        'date': confirmed_at.strftime('%d.%m.%Y'),
        'timestamp': confirmed_at.strftime('%Y-%m-%d %H:%M:%S'),
        'duration': format_duration(transition.duration_in_previous_state),
        'switch_count': str(transition.switch_count),
    }


def render_template(template_str: str, template_vars: Dict[str, Any],
                    escape_json: bool = False) -> str:
    """
    使用 {{variable}} 语法替换模板变量

    Args:
        template_str: 模板字符串
        template_vars: 模板变量
        escape_json: 变量值是否按JSON字符串转义

    Returns:
        str: 渲染后的文本
    """
    rendered = template_str
    for key, value in template_vars.items():
        safe_value = str(value)
        if escape_json:
            safe_value = json.dumps(safe_value, ensure_ascii=False)[1:-1]
        rendered = rendered.replace(f'{{{{{key}}}}}', safe_value)
    return rendered


def render_transition(transition: StateTransition,
                      templates: Optional[Dict[str, str]] = None) -> str:
    """
    渲染状态转换通知文本

    Args:
        transition: 已确认的状态转换
        templates: 运维配置的模板，键为 power_on / power_off

    Returns:
        str: 通知文本

    Raises:
        NotificationError: 新状态不是on/off
    """
    if transition.new_state not in DEFAULT_TEMPLATES:
        raise NotificationError(f"无法为状态 {transition.new_state.value} 渲染通知",
                                ErrorCode.NOTIFICATION_TEMPLATE_ERROR)

    templates = templates or {}
    key = 'power_on' if transition.new_state == PowerState.ON else 'power_off'
    template_str = templates.get(key) or DEFAULT_TEMPLATES[transition.new_state]
    return render_template(template_str, build_template_vars(transition))
