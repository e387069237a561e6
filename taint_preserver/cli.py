"""Main CLI entry point for the node taint preserver."""

import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from taint_preserver.exceptions import ConfigurationError, KubernetesError, TaintPreserverError
from taint_preserver.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="taint-preserver",
    help="Kubernetes controller that preserves custom node taints across node recreation",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


def load_core_api():
    """Build a CoreV1Api from in-cluster config, falling back to kubeconfig.

    Raises:
        KubernetesError: If neither configuration source is usable
    """
    from kubernetes import client, config

    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster config")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.info("Loaded kubeconfig")
        except config.ConfigException as e:
            raise KubernetesError(
                "Could not load Kubernetes config",
                f"{e}\n\nRun inside a cluster with a service account, "
                "or make a kubeconfig available at ~/.kube/config or via KUBECONFIG.",
            )

    return client.CoreV1Api()


# Global callback to set up logging
@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


@app.command()
def version() -> None:
    """Show version information."""
    from taint_preserver import __version__

    typer.echo(f"node-taint-preserver version {__version__}")


@app.command()
def run() -> None:
    """
    Run the controller until interrupted.

    Configuration is read once from the environment: CONFIGMAP_NAMESPACE,
    EXTRA_PROTECTED_TAINT_PREFIXES, HOSTNAME, METRICS_PORT, RESYNC_SECONDS
    and WORKERS.
    """
    from taint_preserver.config import ControllerConfig
    from taint_preserver.controller import NodeTaintController
    from taint_preserver.metrics import serve_metrics

    try:
        config = ControllerConfig.from_env()
        core_api = load_core_api()
    except (ConfigurationError, KubernetesError) as e:
        logger.error(e.message)
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    if config.extra_protected_prefixes:
        logger.info(f"Extra protected taint prefixes: {', '.join(config.extra_protected_prefixes)}")

    serve_metrics(config.metrics_port)

    controller = NodeTaintController(core_api, config)

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        controller.request_stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    controller.run_forever()


@app.command()
def storage_key(
    node_name: str = typer.Argument(..., help="Name of the node"),
) -> None:
    """Print the ConfigMap name holding a node's persisted taints."""
    from taint_preserver.identity import storage_key as compute_storage_key

    typer.echo(compute_storage_key(node_name))


@app.command()
def show(
    node_name: str = typer.Argument(..., help="Name of the node"),
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace holding the records (defaults to CONFIGMAP_NAMESPACE or 'default')",
    ),
) -> None:
    """
    Show the taints persisted for a node.

    Reads the node's record ConfigMap and lists the taints that would be
    restored the next time the node joins the cluster.
    """
    from taint_preserver.config import ControllerConfig
    from taint_preserver.identity import storage_key as compute_storage_key
    from taint_preserver.store import TaintStore

    try:
        config = ControllerConfig.from_env()
        store = TaintStore(load_core_api(), namespace or config.namespace)
        key = compute_storage_key(node_name)
        record = store.get(key)
    except TaintPreserverError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    if record is None:
        console.print(f"[yellow]No record found for node '{node_name}'[/yellow] ({key})")
        raise typer.Exit(code=0)

    if not record.taints:
        console.print(f"Record {key} exists but holds no taints for node '{node_name}'")
        raise typer.Exit(code=0)

    table = Table(title=f"Persisted taints for {node_name}")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_column("Effect", style="yellow")

    for taint in record.taints:
        table.add_row(taint.key, taint.value or "", taint.effect)

    console.print(table)
    console.print(f"\n[bold]Total taints:[/bold] {len(record.taints)}")


if __name__ == "__main__":
    app()
