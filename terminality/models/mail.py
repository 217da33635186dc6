from typing import Literal

from pydantic import Field

from .base import CamelModel

MailFolder = Literal["inbox", "news", "spam", "archive"]
MailKind = Literal["story", "completion", "reward"]


class MailMessage(CamelModel):
    id: str
    from_name: str = "Unknown Sender"
    from_address: str = "noreply@atlasnet"
    subject: str = "Untitled"
    body: str = ""
    folder: MailFolder = "inbox"
    in_universe_date: str = ""
    linked_quest_id: str | None = None
    quest_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    kind: MailKind = "story"

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_address}>"
