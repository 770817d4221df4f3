from typing import Dict, List, Literal, Union

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from economist_ai.exception import ErrorType
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.tools.tool_response import (
    create_error_response,
    create_success_response,
    handle_tool_validation_error,
    validation_error_response,
)


class ChartInput(BaseModel):
    data: List[Dict[str, Union[str, int, float]]] = Field(
        description="Data points, one record per x value, e.g. [{'year': '2020', 'gdp': 21.06}]"
    )
    x_key: str = Field(description="Record key used for the x axis")
    y_key: str = Field(description="Record key used for the y axis")
    chart_type: Literal["bar", "line", "area", "pie"] = Field(
        default="bar", description="Chart style"
    )


async def generate_chart(data, x_key, y_key, chart_type="bar") -> dict:
    try:
        args = ChartInput(data=data, x_key=x_key, y_key=y_key, chart_type=chart_type)
    except PydanticValidationError as e:
        return validation_error_response(e, "Please check your input data and try again.")

    if not all(args.x_key in item and args.y_key in item for item in args.data):
        return create_error_response(
            f"All data items must contain the keys: {args.x_key} and {args.y_key}",
            ErrorType.VALIDATION_ERROR,
            "Some data items are missing required keys for chart generation.",
            "Please ensure all data items have both x_key and y_key properties.",
        )

    if not args.data:
        return create_error_response(
            "Chart data cannot be empty",
            ErrorType.VALIDATION_ERROR,
            "No data provided for chart generation.",
            "Please provide at least one data item for the chart.",
        )

    log.info("Chart payload generated | type=%s | points=%d", args.chart_type, len(args.data))
    return create_success_response(
        {"data": args.data, "xKey": args.x_key, "yKey": args.y_key, "type": args.chart_type}
    )


def build_chart_tool() -> StructuredTool:
    return StructuredTool.from_function(
        coroutine=generate_chart,
        name="chart_tool",
        description="Generate a chart payload (data + x/y keys + chart type) for the UI to render.",
        args_schema=ChartInput,
        handle_validation_error=handle_tool_validation_error,
    )
