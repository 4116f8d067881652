"""上下文增强流程（天气与受控的网页搜索）。"""

from sora_core.flows.runner import ContextEnricher

__all__ = ["ContextEnricher"]
