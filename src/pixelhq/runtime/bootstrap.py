"""Bootstrap - 集中构造系统组件

职责：
- 创建 Timer, StateMachine, BroadcastHub, HookReceiver
- StateMachine 在构造时把衰减 tick 注册到 Timer
- 返回 RuntimeComponents 供调用方使用

不负责：
- 启动/停止生命周期（由 web.app.start_server 管理）

没有全局注册表，测试里可以构造多套独立组件。
"""

from dataclasses import dataclass

from ..hooks.receiver import HookReceiver
from ..state import StateMachine
from ..state.machine import Clock
from ..telemetry import get_logger
from ..timer import Timer
from ..web.hub import BroadcastHub

logger = get_logger(__name__)


@dataclass
class RuntimeComponents:
    """Bootstrap 返回的运行时组件集合"""

    timer: Timer
    state_machine: StateMachine
    hub: BroadcastHub
    receiver: HookReceiver

    async def shutdown(self) -> None:
        """关闭连接并取消衰减 tick"""
        await self.hub.close_all()
        if not self.state_machine.is_destroyed:
            self.state_machine.destroy()
        logger.info("[Bootstrap] Components shut down")


def bootstrap(token: str, clock: Clock | None = None, timer: Timer | None = None) -> RuntimeComponents:
    """构造运行时组件

    Args:
        token: WebSocket 共享 token
        clock: 毫秒时钟（测试注入）
        timer: Timer 实例，None 时新建
    """
    timer = timer or Timer()
    state_machine = StateMachine(timer=timer, clock=clock)
    hub = BroadcastHub(state_machine, token)
    receiver = HookReceiver(state_machine)

    logger.info("[Bootstrap] Components created")

    return RuntimeComponents(
        timer=timer,
        state_machine=state_machine,
        hub=hub,
        receiver=receiver,
    )
