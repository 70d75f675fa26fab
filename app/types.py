from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class CommandType:
    ROAST = "roast"
    TRUTH_OR_DARE = "truth-or-dare"
    ADVICE = "advice"
    SUMMARIZE = "summarize"
    MOST_LIKELY_TO = "most-likely-to"


class ParsedCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Optional[str] = None     # None means no command matched
    target: Optional[str] = None
    confidence: float = 0.0

    @property
    def matched(self) -> bool:
        return self.type is not None


class GroupContext(BaseModel):
    sender: str
    active_members: int
    recent_senders: int
    is_group_chat: bool
    group_size: int


class BroadcastResult(BaseModel):
    success: bool
    broadcast_count: int = 0
    recipients: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    error: Optional[str] = None    # set only when audience resolution failed
    group_context: Optional[GroupContext] = None
