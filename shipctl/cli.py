import logging
import sys

import typer

from shipctl.commands import cluster, machine, serve
from shipctl.logging import setup_logger

app = typer.Typer()

debug_mode = False


def setup_logging(debug: bool = False):
    """Configure logging based on debug mode."""
    level = logging.DEBUG if debug else logging.INFO
    setup_logger("shipctl", level)


app.add_typer(cluster.app, name="cluster")
app.add_typer(machine.app, name="machine")
app.add_typer(serve.app, name="serve")


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """shipctl - Kubernetes cluster provisioning CLI."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger("shipctl").debug("Debug mode enabled")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
