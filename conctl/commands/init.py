import logging
from pathlib import Path
from typing import Optional

import typer

from conctl.config import Config
from conctl.modules.cilium_values import write_default_cilium_values
from conctl.modules.cluster_spec import render_cluster_declaration
from conctl.utils import write_text_atomic

logger = logging.getLogger("conctl.commands.init")


def init_config_dir(
    config_dir: Path,
    force: bool = False,
    cilium_values: Optional[Path] = None,
) -> Path:
    """Create the config directory layout and a cluster.conf to edit.

    Raises:
        FileExistsError: If cluster.conf exists and force is False
    """
    cluster_conf = config_dir / "cluster.conf"
    if cluster_conf.exists() and not force:
        raise FileExistsError(f"File already exists: {cluster_conf}")

    (config_dir / "patches").mkdir(parents=True, exist_ok=True)
    (config_dir / "configs").mkdir(parents=True, exist_ok=True)
    gitignore = config_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("*\n", encoding="utf-8")

    write_text_atomic(cluster_conf, render_cluster_declaration(), mode=0o644)
    logger.info(f"Created cluster declaration: {cluster_conf}")

    if cilium_values is not None and not cilium_values.exists():
        write_default_cilium_values(cilium_values)
        typer.echo(f"✓ Default Cilium values file created: {cilium_values}")
    return cluster_conf


def init(
    config_dir: Path = typer.Option(None, help="Configuration directory (default: $CONFIG_DIR or .con)"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing cluster.conf"),
    cilium_values: Path = typer.Option(None, help="Write default Cilium values here if the file is missing"),
):
    """Initialize the configuration directory."""
    config_dir = config_dir or Config.CONFIG_DIR
    typer.echo("🔧 Initializing configuration directory...")
    try:
        init_config_dir(config_dir, force=force, cilium_values=cilium_values)
    except FileExistsError as e:
        typer.echo(f"❌ {e} (use --force to overwrite)", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"✓ Configuration directory initialized at {config_dir}")
    typer.echo("")
    typer.echo("📝 Next steps:")
    typer.echo(f"  1. Edit {config_dir}/cluster.conf to customize settings")
    typer.echo("  2. Run: conctl generate configs")
