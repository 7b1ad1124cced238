from fastapi import APIRouter, Depends, Query

from invoicehub.middleware.auth import get_current_user
from invoicehub.schemas.command import CommandAction, CommandResponse, CommandSearchResponse
from invoicehub.services.commands import Command, group_commands, search_commands

router = APIRouter()


def _to_response(cmd: Command) -> CommandResponse:
    return CommandResponse(
        id=cmd.id,
        label=cmd.label,
        description=cmd.description,
        keywords=list(cmd.keywords),
        group=cmd.group,
        shortcut=cmd.shortcut,
        action=CommandAction(**cmd.action),
    )


@router.get("", response_model=CommandSearchResponse)
async def list_commands(
    q: str = Query("", max_length=100),
    current_user: dict = Depends(get_current_user),
):
    grouped = group_commands(search_commands(q))
    return CommandSearchResponse(
        query=q,
        groups={group: [_to_response(c) for c in cmds] for group, cmds in grouped.items()},
    )
