"""Argument models and descriptions of the tools offered to the chat model."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ToolName(str, Enum):
    ADD_RESOURCE = "addResource"
    GET_INFORMATION = "getInformation"
    UNDERSTAND_QUERY = "understandQuery"


ADD_RESOURCE_DESCRIPTION = (
    "add a resource to your knowledge base. "
    "If the user provides a random piece of knowledge unprompted, "
    "use this tool without asking for confirmation."
)
GET_INFORMATION_DESCRIPTION = "get information from your knowledge base to answer questions."
UNDERSTAND_QUERY_DESCRIPTION = "understand the users query. use this tool on every prompt."


class AddResourceArgs(BaseModel):
    content: str = Field(description="the content or resource to add to the knowledge base")


class GetInformationArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(description="the users question")
    similar_questions: list[str] = Field(alias="similarQuestions", description="keywords to search")


class UnderstandQueryArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(description="the users query")
    tools_to_call_in_order: list[str] = Field(
        alias="toolsToCallInOrder",
        description="these are the tools you need to call in the order necessary to respond to the users query",
    )


__all__ = [
    "ToolName",
    "AddResourceArgs",
    "GetInformationArgs",
    "UnderstandQueryArgs",
    "ADD_RESOURCE_DESCRIPTION",
    "GET_INFORMATION_DESCRIPTION",
    "UNDERSTAND_QUERY_DESCRIPTION",
]
