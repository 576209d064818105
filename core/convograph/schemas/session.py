"""Session Schema - external conversation handle bound to a checkpoint key."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def checkpoint_key_for(session_id: str) -> str:
    """Checkpoint key used by the engine for a session (the session id itself)."""
    return session_id


class Session(BaseModel):
    """Bookkeeping for one external conversation."""

    session_id: str
    label: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    last_access: datetime = Field(default_factory=datetime.now)
    message_count: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @property
    def checkpoint_key(self) -> str:
        return checkpoint_key_for(self.session_id)

    def touch(self) -> None:
        self.last_access = datetime.now()
