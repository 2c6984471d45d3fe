"""PixelHQ - 把 Claude Code 工具事件转成实时活动模式，推送给显示端"""

__version__ = "0.1.0"
