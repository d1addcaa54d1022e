import logging
from contextlib import contextmanager

import typer

from ..errors import ConctlError


@contextmanager
def exit_on_error():
    """Turn pipeline errors into a single message and exit status 1."""
    try:
        yield
    except ConctlError as e:
        logging.getLogger("conctl").debug("Pipeline error", exc_info=True)
        typer.echo(f"❌ {type(e).__name__}: {e}", err=True)
        raise typer.Exit(code=1)
