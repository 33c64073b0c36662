"""CLI entrypoint for ctrlplane-agent."""

import logging
from collections.abc import Callable
from typing import TypeVar

import rich_click as click

from ctrlplane_agent import __version__
from ctrlplane_agent.controllers import (
    AgentCliController,
    AgentCycleCommand,
    AgentRunCommand,
    GetJobCommand,
    RegisterCommand,
)

click.rich_click.USE_MARKDOWN = True
AGENT_CONTROLLER = AgentCliController()

CommandT = TypeVar("CommandT")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="ctrlplane-agent")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    envvar="CTRLPLANE_LOG_LEVEL",
    help="Logging verbosity.",
)
def ctrlplane_agent(log_level: str) -> None:
    """Ctrlplane job agent.

    Polls the Ctrlplane job queue, triggers claimed jobs on the configured
    executor and reports their outcome. Configuration is read from
    `CTRLPLANE_*` environment variables at the start of every cycle.
    """

    logging.basicConfig(level=getattr(logging, log_level.upper()), format=LOG_FORMAT)


@ctrlplane_agent.command("run")
@click.option(
    "--max-cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many cycles (default: run until SIGINT/SIGTERM).",
)
@click.option(
    "--quiesce",
    is_flag=True,
    default=False,
    help="Only reconcile already tracked jobs; claim nothing new.",
)
def agent_run(max_cycles: int | None, quiesce: bool) -> None:
    """Run polling cycles every poll interval until stopped.

    Send `SIGUSR1` to stop claiming new jobs while tracked ones finish.
    """

    _emit_lines(
        _call(
            AGENT_CONTROLLER.run,
            AgentRunCommand(max_cycles=max_cycles, quiesce=quiesce),
        ),
    )


@ctrlplane_agent.command("cycle")
@click.option(
    "--no-dispatch",
    "no_dispatch",
    is_flag=True,
    default=False,
    help="Register and reconcile only.",
)
def agent_cycle(no_dispatch: bool) -> None:
    """Run exactly one polling cycle and print its summary."""

    _emit_lines(_call(AGENT_CONTROLLER.cycle, AgentCycleCommand(dispatch=not no_dispatch)))


@ctrlplane_agent.command("register")
def agent_register() -> None:
    """Upsert the agent and print the id assigned by Ctrlplane."""

    _emit_lines(_call(AGENT_CONTROLLER.register, RegisterCommand()))


@ctrlplane_agent.command("get-job")
@click.argument("job_id")
def agent_get_job(job_id: str) -> None:
    """Fetch one job record and print it as JSON."""

    _emit_lines(_call(AGENT_CONTROLLER.get_job, GetJobCommand(job_id=job_id)))


def _call(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ctrlplane_agent()
