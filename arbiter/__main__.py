"""
arbiter.__main__ — Entry point for ``python -m arbiter``
=========================================================

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (platform settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Seed the special communities (idempotent).
5. Build the DecisionOrchestrator over the SQL collaborators.
6. Evaluate and print the JSON trace.

Run with::

    python -m arbiter explain --user u1 --community c1 --action vote --publication p1
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from arbiter.config import load_config
from arbiter.database.engine import create_db_engine, init_db
from arbiter.database.models import Action, ResourceKind, VoteDirection
from arbiter.engine.orchestrator import DecisionOrchestrator
from arbiter.engine.types import ResourceRef
from arbiter.services.lookup_service import sql_collaborators
from arbiter.services.seed import seed_special_communities

logger = logging.getLogger("arbiter")

app = typer.Typer(
    name="arbiter",
    help="Permission & currency decisions for merit communities",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )


def _resource(
    publication: str | None, comment: str | None, poll: str | None
) -> ResourceRef | None:
    given = [
        ResourceRef(kind, rid)
        for kind, rid in (
            (ResourceKind.PUBLICATION, publication),
            (ResourceKind.COMMENT, comment),
            (ResourceKind.POLL, poll),
        )
        if rid
    ]
    if len(given) > 1:
        console.print("[red]Error:[/red] pass at most one of --publication/--comment/--poll")
        raise typer.Exit(2)
    return given[0] if given else None


async def _explain(
    orchestrator: DecisionOrchestrator,
    user: str,
    community: str | None,
    action: Action,
    resource: ResourceRef | None,
    direction: VoteDirection | None,
    amount: float | None,
) -> dict[str, Any]:
    decision = await orchestrator.can_perform_action(
        user, community, action, resource=resource, direction=direction
    )
    trace = orchestrator.explain(decision)
    if amount is not None and decision.allowed and decision.context is not None:
        ctx = decision.context
        destination = await orchestrator.evaluate_merit_destination(
            ctx.community_id, ctx.effective_beneficiary_id, amount
        )
        trace["merit_destination"] = [d.to_dict() for d in destination]
    return trace


@app.callback()
def main() -> None:
    """Arbiter decision engine tools."""


@app.command()
def explain(
    user: str = typer.Option(..., "--user", "-u", help="Requesting user id"),
    action: Action = typer.Option(..., "--action", "-a", help="Action to check"),
    community: Optional[str] = typer.Option(
        None, "--community", "-c", help="Community id (taken from the resource if omitted)"
    ),
    publication: Optional[str] = typer.Option(None, "--publication", help="Publication id"),
    comment: Optional[str] = typer.Option(None, "--comment", help="Comment id"),
    poll: Optional[str] = typer.Option(None, "--poll", help="Poll id"),
    direction: Optional[VoteDirection] = typer.Option(
        None, "--direction", "-d", help="Vote direction"
    ),
    amount: Optional[float] = typer.Option(
        None, "--amount", help="Also route this much merit to its destination"
    ),
    config_path: Path = typer.Option(
        Path("config.yaml"), "--config", help="Path to config.yaml"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every factor branch"),
) -> None:
    """Print the decision trace for one action.  Exit 0 if allowed, 1 if denied."""
    _configure_logging(verbose)
    load_dotenv()

    resource = _resource(publication, comment, poll)
    if community is None and resource is None:
        console.print("[red]Error:[/red] --community is required without a resource")
        raise typer.Exit(2)

    cfg = load_config(config_path)
    logger.info("Config loaded, platform=%s", cfg.platform_name)

    engine = create_db_engine()
    init_db(engine)
    seed_special_communities(engine)

    orchestrator = DecisionOrchestrator.create(config=cfg, **sql_collaborators(engine))
    trace = asyncio.run(
        _explain(orchestrator, user, community, action, resource, direction, amount)
    )
    console.print_json(data=trace)
    raise typer.Exit(0 if trace["allowed"] else 1)


if __name__ == "__main__":
    app()
