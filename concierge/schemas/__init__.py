from .activity import ActivityItem, ActivityStatus
from .budget import DemoAccessResult, DemoFeature, DemoSession, FeatureUsage
from .chat import ChatMessage, ChatRequest
from .context import (
    CompanyInfo,
    ContextSnapshot,
    ConversationStage,
    Intent,
    Lead,
    PersonInfo,
)
from .tools import ToolExecution, ToolExecutionStatus, ToolRunResult

__all__ = [
    "ActivityItem",
    "ActivityStatus",
    "ChatMessage",
    "ChatRequest",
    "CompanyInfo",
    "ContextSnapshot",
    "ConversationStage",
    "DemoAccessResult",
    "DemoFeature",
    "DemoSession",
    "FeatureUsage",
    "Intent",
    "Lead",
    "PersonInfo",
    "ToolExecution",
    "ToolExecutionStatus",
    "ToolRunResult",
]
