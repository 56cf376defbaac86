"""
Command-line interface for Azure Data Refresh.
"""

import click

from data_refresh.commands.replicas import refresh_replicas


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug output including the effective configuration",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, debug: bool) -> None:
    """Azure Data Refresh - rebuild secondary replicas of a refreshed environment."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()
    ctx.obj["debug"] = debug


cli.add_command(refresh_replicas, "refresh-replicas")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
