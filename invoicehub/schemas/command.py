from typing import Dict, List, Literal, Optional
from pydantic import BaseModel

CommandGroup = Literal["actions", "navigation", "settings", "ai"]


class CommandAction(BaseModel):
    kind: Literal["api", "navigate", "client"]
    method: Optional[str] = None
    path: Optional[str] = None
    name: Optional[str] = None


class CommandResponse(BaseModel):
    id: str
    label: str
    description: Optional[str] = None
    keywords: List[str] = []
    group: CommandGroup
    shortcut: Optional[str] = None
    action: CommandAction


class CommandSearchResponse(BaseModel):
    query: str
    groups: Dict[str, List[CommandResponse]]
