import logging
import sys

import typer

from conctl.commands import generate, init, validate
from conctl.config import Config
from conctl.logging import setup_logger

app = typer.Typer(help="Talos cluster patch generation and machine config assembly.")

# Global debug flag
debug_mode = False

# Configure logging
def setup_logging(debug_mode: bool = False):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    return setup_logger("conctl", log_level, Config.LOG_FORMAT)

# Add all command groups
app.command("init")(init.init)
app.add_typer(generate.app, name="generate", help="Generate secret patches or machine configs")
app.add_typer(validate.app, name="validate", help="Validate the cluster declaration and patches")

# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """conctl - Talos cluster configuration CLI."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger("conctl").debug("Debug mode enabled")
    try:
        Config.validate()
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)

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
