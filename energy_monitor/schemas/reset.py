from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class VoteRequest(BaseModel):
    device_id: str = Field(..., min_length=1)


class VoteResponse(BaseModel):
    success: bool = True
    votes_received: int
    required_votes: int
    reset_triggered: bool


class ResetSessionRead(BaseModel):
    id: int
    device_id: str
    required_votes: int
    votes_received: int
    status: str
    created_at: datetime
    expires_at: datetime
    reset_executed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class VoterRead(BaseModel):
    user_id: str
    voted_at: datetime
    display_name: str | None = None


class ResetStatus(BaseModel):
    session: ResetSessionRead | None = None
    votes: list[VoterRead] = Field(default_factory=list)
    required_votes: int
    votes_received: int
