"""CLI for pulsarkit."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.console import Console
from rich.table import Table

from pulsarkit import __version__
from pulsarkit.core.models import DeliveryGuarantee, Settings
from pulsarkit.core.parser import EnvVarError, ParseError, load_settings
from pulsarkit.errors import PulsarkitError
from pulsarkit.runtime.operator import PulsarRuntimeOperator

console = Console()
error_console = Console(stderr=True)

GUARANTEE_CHOICES = [g.value for g in DeliveryGuarantee]


def create_operator(settings: Settings) -> PulsarRuntimeOperator:
    """Open an operator for the configured cluster."""
    return PulsarRuntimeOperator.from_config(settings.pulsar)


def _settings(ctx: click.Context) -> Settings:
    if "settings" not in ctx.obj:
        config_path = ctx.obj.get("config_path")
        ctx.obj["settings"] = load_settings(Path(config_path) if config_path else None)
    return ctx.obj["settings"]


@contextmanager
def _operator(ctx: click.Context) -> Iterator[PulsarRuntimeOperator]:
    """Open an operator and turn failures into an error line and exit code 1."""
    try:
        operator = create_operator(_settings(ctx))
    except (EnvVarError, ParseError) as e:
        error_console.print(f"[red]ERROR[/red]: {e}")
        sys.exit(1)
    except Exception as e:
        error_console.print(f"[red]ERROR[/red]: Cannot connect to Pulsar: {e}")
        sys.exit(1)

    try:
        with operator:
            yield operator
    except PulsarkitError as e:
        error_console.print(f"[red]ERROR[/red]: {e}")
        sys.exit(1)
    except Exception as e:
        error_console.print(f"[red]ERROR[/red]: Unexpected error: {e}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to pulsarkit.yml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool) -> None:
    """pulsarkit - test operator for Apache Pulsar.

    Provision topics, exchange messages and verify sink delivery guarantees.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ============================================================================
# Provisioning
# ============================================================================


@main.group()
def tenant() -> None:
    """Manage tenants."""
    pass


@tenant.command("create")
@click.argument("name")
@click.pass_context
def tenant_create(ctx: click.Context, name: str) -> None:
    """Create a tenant if it doesn't exist."""
    with _operator(ctx) as operator:
        operator.create_tenant(name)
    console.print(f"[green]Tenant '{name}' is ready[/green]")


@main.group()
def namespace() -> None:
    """Manage namespaces."""
    pass


@namespace.command("create")
@click.argument("name")
@click.pass_context
def namespace_create(ctx: click.Context, name: str) -> None:
    """Create a namespace (tenant/namespace) if it doesn't exist."""
    with _operator(ctx) as operator:
        operator.create_namespace(name)
    console.print(f"[green]Namespace '{name}' is ready[/green]")


@main.group()
def topic() -> None:
    """Manage topics."""
    pass


@topic.command("create")
@click.argument("name")
@click.option(
    "--partitions",
    "-n",
    type=int,
    default=0,
    show_default=True,
    help="Number of partitions, 0 for a non-partitioned topic",
)
@click.pass_context
def topic_create(ctx: click.Context, name: str, partitions: int) -> None:
    """Create a topic if it doesn't exist."""
    with _operator(ctx) as operator:
        operator.create_topic(name, partitions)
    console.print(f"[green]Topic '{name}' is ready[/green]")


@topic.command("delete")
@click.argument("name")
@click.pass_context
def topic_delete(ctx: click.Context, name: str) -> None:
    """Delete a topic; missing topics are ignored."""
    with _operator(ctx) as operator:
        operator.delete_topic(name)
    console.print(f"[green]Topic '{name}' is deleted[/green]")


@topic.command("increase")
@click.argument("name")
@click.argument("partitions", type=int)
@click.pass_context
def topic_increase(ctx: click.Context, name: str, partitions: int) -> None:
    """Grow a partitioned topic to PARTITIONS partitions."""
    with _operator(ctx) as operator:
        operator.increase_topic_partitions(name, partitions)
    console.print(f"[green]Topic '{name}' now has {partitions} partitions[/green]")


@topic.command("partitions")
@click.argument("name")
@click.pass_context
def topic_partitions(ctx: click.Context, name: str) -> None:
    """List the partitions of a topic."""
    with _operator(ctx) as operator:
        partitions = operator.topic_info(name)

    table = Table(title=f"Partitions of {name}")
    table.add_column("Index", style="cyan")
    table.add_column("Topic", style="green")
    for partition in partitions:
        table.add_row(str(partition.partition_id), partition.full_name())
    console.print(table)


# ============================================================================
# Messaging
# ============================================================================


@main.command()
@click.argument("topic_name")
@click.argument("messages", nargs=-1, required=True)
@click.option("--key", "-k", help="Message key used for routing")
@click.pass_context
def produce(ctx: click.Context, topic_name: str, messages: tuple[str, ...], key: Optional[str]) -> None:
    """Send string MESSAGES to TOPIC_NAME."""
    from pulsar.schema import StringSchema

    with _operator(ctx) as operator:
        message_ids = operator.send_messages(topic_name, StringSchema(), list(messages), key=key)
    console.print(f"[green]Sent {len(message_ids)} messages to '{topic_name}'[/green]")


@main.command()
@click.argument("topic_name")
@click.option(
    "--count",
    "-n",
    type=int,
    default=1,
    show_default=True,
    help="Number of messages, negative to drain the topic",
)
@click.option(
    "--timeout",
    "-t",
    type=float,
    help="Seconds to wait for each message; without it receives block",
)
@click.pass_context
def consume(ctx: click.Context, topic_name: str, count: int, timeout: Optional[float]) -> None:
    """Receive string messages from TOPIC_NAME."""
    from pulsar.schema import StringSchema

    schema = StringSchema()
    with _operator(ctx) as operator:
        if timeout is not None and count < 0:
            messages = operator.receive_all_messages(topic_name, schema, timeout)
        elif timeout is not None:
            messages = []
            while len(messages) < count:
                message = operator.receive_message(topic_name, schema, timeout)
                if message is None:
                    break
                messages.append(message)
        else:
            messages = operator.receive_messages(topic_name, schema, count)

    if not messages:
        console.print(f"[yellow]No messages received from '{topic_name}'[/yellow]")
        return
    for message in messages:
        console.print(message.value())


# ============================================================================
# Delivery guarantees
# ============================================================================


@main.command("sink-config")
@click.option(
    "--guarantee",
    "-g",
    type=click.Choice(GUARANTEE_CHOICES),
    default=DeliveryGuarantee.AT_LEAST_ONCE.value,
    show_default=True,
)
@click.pass_context
def sink_config(ctx: click.Context, guarantee: str) -> None:
    """Show the sink configuration for a delivery guarantee."""
    from pulsarkit.runtime.config import ConfigurationAssembler

    try:
        settings = _settings(ctx)
    except (EnvVarError, ParseError) as e:
        error_console.print(f"[red]ERROR[/red]: {e}")
        sys.exit(1)

    pulsar = settings.pulsar
    assembler = ConfigurationAssembler(
        pulsar.container_service_url or pulsar.service_url,
        pulsar.container_admin_url or pulsar.admin_url,
    )
    config = assembler.sink_config(DeliveryGuarantee.parse(guarantee))

    table = Table(title=f"Sink configuration ({guarantee})")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in config.items():
        if isinstance(value, DeliveryGuarantee):
            value = value.value
        table.add_row(key, str(value))
    console.print(table)


@main.command()
@click.option(
    "--guarantee",
    "-g",
    "guarantees",
    type=click.Choice(GUARANTEE_CHOICES),
    multiple=True,
    help="Guarantee to verify (repeatable, defaults to all)",
)
@click.option("--seed", type=int, help="Random seed for topic names and records")
@click.pass_context
def verify(ctx: click.Context, guarantees: tuple[str, ...], seed: Optional[int]) -> None:
    """Write records through a Pulsar sink and check what reached the topic."""
    import random

    from pulsarkit.testing.verification import GuaranteeVerificationDriver

    selected = [DeliveryGuarantee.parse(g) for g in guarantees] or list(DeliveryGuarantee)
    results = []
    failed = False

    with _operator(ctx) as operator:
        driver = GuaranteeVerificationDriver(
            operator,
            config=_settings(ctx).verification,
            rng=random.Random(seed),
        )
        for guarantee in selected:
            try:
                results.append(driver.run(guarantee).to_dict())
            except Exception as e:
                failed = True
                results.append({"guarantee": guarantee.value, "state": "failed", "error": str(e)})

    table = Table(title="Delivery Guarantee Verification")
    table.add_column("Guarantee", style="cyan")
    table.add_column("Topic")
    table.add_column("Expected", style="green")
    table.add_column("Consumed", style="green")
    table.add_column("Status")
    for result in results:
        status = (
            "[green]passed[/green]"
            if result["state"] == "done"
            else f"[red]failed[/red] {result.get('error') or ''}"
        )
        table.add_row(
            result["guarantee"],
            result.get("topic", "-"),
            str(result.get("expected", "-")),
            str(result.get("consumed", "-")),
            status,
        )
    console.print(table)

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
