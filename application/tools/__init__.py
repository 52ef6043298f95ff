from application.tools.registry import ToolOutcome, ToolRegistry, ToolSpec
from application.tools.retrieval_tools import RESOURCE_CREATED, RetrievalTools, build_tool_registry
from application.tools.schemas import AddResourceArgs, GetInformationArgs, ToolName, UnderstandQueryArgs

__all__ = [
    "ToolName",
    "ToolSpec",
    "ToolOutcome",
    "ToolRegistry",
    "RetrievalTools",
    "build_tool_registry",
    "RESOURCE_CREATED",
    "AddResourceArgs",
    "GetInformationArgs",
    "UnderstandQueryArgs",
]
