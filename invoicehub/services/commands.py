"""
Command palette registry.

A static list of commands the UI can offer. Commands whose action is "api"
map onto invoice endpoints; the rest are handled by the client (routing,
theme, sign-out). Search is fuzzy over label, keywords and description.
"""

from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Tuple

# Maximum normalized distance (0 = exact, 1 = nothing in common) for a match.
MATCH_THRESHOLD = 0.3

GROUP_ORDER = ("actions", "navigation", "settings", "ai")


@dataclass(frozen=True)
class Command:
    id: str
    label: str
    group: str
    action: Dict[str, str]
    description: Optional[str] = None
    keywords: Tuple[str, ...] = field(default_factory=tuple)
    shortcut: Optional[str] = None


COMMANDS: List[Command] = [
    Command(
        id="new-invoice",
        label="New Invoice",
        description="Create a new invoice",
        keywords=("new", "create", "invoice", "bill", "inv", "add"),
        group="actions",
        action={"kind": "api", "method": "POST", "path": "/api/v1/invoices"},
        shortcut="⌘N",
    ),
    Command(
        id="export-invoices",
        label="Export Invoices",
        description="Download invoices as CSV",
        keywords=("export", "download", "csv", "save", "data", "excel"),
        group="actions",
        action={"kind": "api", "method": "GET", "path": "/api/v1/invoices/export"},
    ),
    Command(
        id="goto-dashboard",
        label="Go to Dashboard",
        description="View all invoices",
        keywords=("dashboard", "invoices", "home", "main", "go"),
        group="navigation",
        action={"kind": "navigate", "path": "/dashboard"},
    ),
    Command(
        id="goto-billing",
        label="Go to Billing",
        description="Manage subscription",
        keywords=("billing", "subscription", "plan", "payment", "go"),
        group="navigation",
        action={"kind": "navigate", "path": "/billing"},
    ),
    Command(
        id="view-profile",
        label="View Profile",
        description="Open your profile",
        keywords=("profile", "account", "user", "settings", "me"),
        group="navigation",
        action={"kind": "client", "name": "open_profile"},
    ),
    Command(
        id="toggle-theme",
        label="Toggle Theme",
        description="Switch between light and dark mode",
        keywords=("theme", "dark", "light", "mode", "appearance", "toggle"),
        group="settings",
        action={"kind": "client", "name": "toggle_theme"},
    ),
    Command(
        id="sign-out",
        label="Sign Out",
        description="Log out of your account",
        keywords=("logout", "sign out", "exit", "leave", "quit"),
        group="settings",
        action={"kind": "client", "name": "sign_out"},
    ),
    Command(
        id="ask-nelli",
        label="Ask Nelli",
        description="Chat with your AI assistant",
        keywords=("ai", "nelli", "ask", "assistant", "help", "chat", "bot"),
        group="ai",
        action={"kind": "client", "name": "coming_soon"},
    ),
]

_BY_ID = {c.id: c for c in COMMANDS}


def get_command(command_id: str) -> Optional[Command]:
    return _BY_ID.get(command_id)


def _distance(query: str, text: str) -> float:
    """
    0.0 when the query is a substring of the text; otherwise one minus the
    best similarity between the query and any equally long window of it.
    """
    text = text.lower()
    if query in text:
        return 0.0
    n = len(query)
    if len(text) <= n:
        return 1.0 - SequenceMatcher(None, query, text).ratio()
    best = 0.0
    for start in range(len(text) - n + 1):
        ratio = SequenceMatcher(None, query, text[start:start + n]).ratio()
        if ratio > best:
            best = ratio
    return 1.0 - best


def _score(command: Command, query: str) -> float:
    fields = [command.label, *command.keywords]
    if command.description:
        fields.append(command.description)
    return min(_distance(query, f) for f in fields)


def search_commands(query: str, threshold: float = MATCH_THRESHOLD) -> List[Command]:
    """Commands matching `query`, best first; registry order for an empty query or ties."""
    q = (query or "").strip().lower()
    if not q:
        return list(COMMANDS)
    scored = [(_score(c, q), i, c) for i, c in enumerate(COMMANDS)]
    return [c for score, _, c in sorted(scored) if score <= threshold]


def group_commands(commands: List[Command]) -> Dict[str, List[Command]]:
    grouped: Dict[str, List[Command]] = {}
    for group in GROUP_ORDER:
        members = [c for c in commands if c.group == group]
        if members:
            grouped[group] = members
    return grouped
