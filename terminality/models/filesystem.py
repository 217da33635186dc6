from typing import Literal

from pydantic import field_validator

from .base import CamelModel

FileTag = Literal["clue", "lore", "objective", "sensitive", "trap", "log"]
NodeType = Literal["file", "dir"]


class LogOptions(CamelModel):
    record_failed_logins: bool | None = None
    record_successful_logins: bool | None = None
    record_file_deletions: bool | None = None


class FilesystemNode(CamelModel):
    type: NodeType
    name: str
    path: str
    # Directories only; authoritative and order-significant.
    children: list[str] | None = None
    # Files only.
    content: str | None = None
    tags: list[FileTag] | None = None
    log_options: LogOptions | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _folder_is_dir(cls, value):
        if isinstance(value, str) and value.lower() == "folder":
            return "dir"
        return value

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value):
        if value is None:
            return None
        return list(dict.fromkeys(value))

    @property
    def is_dir(self) -> bool:
        return self.type == "dir"

    def has_tag(self, tag: str) -> bool:
        return bool(self.tags) and tag in self.tags


FilesystemMap = dict[str, FilesystemNode]


def root_node() -> FilesystemNode:
    return FilesystemNode(type="dir", name="/", path="/", children=[])
