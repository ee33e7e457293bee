from enum import IntEnum
from abc import ABC, abstractmethod

from codr.llm.types import ToolDefinition
from codr.types import ToolResult


class ToolRisk(IntEnum):
    READ_ONLY = 10
    WRITE = 20


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("additionalProperties", False)
    return s


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.READ_ONLY

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult: ...

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=normalize_schema(self.parameters),
        )
