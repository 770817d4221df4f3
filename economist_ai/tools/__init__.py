from .chart_tool import build_chart_tool, generate_chart
from .economic_indicator import EconomicIndicatorClient, build_economic_indicator_tool
from .economic_news import EconomicNewsClient, build_economic_news_tool
from .tool_response import CommonErrors, create_error_response, create_success_response
from .vault_tools import build_vault_tools

__all__ = [
    "CommonErrors",
    "EconomicIndicatorClient",
    "EconomicNewsClient",
    "build_chart_tool",
    "build_economic_indicator_tool",
    "build_economic_news_tool",
    "build_vault_tools",
    "create_error_response",
    "create_success_response",
    "generate_chart",
]
