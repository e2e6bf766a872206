from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from citaflow.dependencies import get_tool_service
from citaflow.services.tool_service import TOOLS, ToolService

router = APIRouter(prefix="/tools", tags=["tools"])


@router.get("")
async def list_tools():
    return {"tools": [tool.describe() for tool in TOOLS.values()]}


@router.post("/{tool_name}")
async def invoke_tool(
    tool_name: str,
    arguments: dict[str, Any] = Body(default={}),
    tools: ToolService = Depends(get_tool_service),
):
    if tool_name not in TOOLS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tool '{tool_name}' not found")
    result = await tools.invoke(tool_name, arguments)
    return result.to_payload()
