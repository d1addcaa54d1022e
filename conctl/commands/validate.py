from pathlib import Path

import typer

from conctl.commands import exit_on_error
from conctl.config import Config
from conctl.modules.cluster_spec import load_cluster_spec
from conctl.modules.fragments import CommittedFragmentStore
from conctl.modules.merge import check_conflicts

app = typer.Typer()


@app.command("cluster")
def validate_cluster(
    config_dir: Path = typer.Option(None, help="Configuration directory (default: $CONFIG_DIR or .con)"),
    committed_dir: Path = typer.Option(None, help="Committed patches directory (default: setup/patches)"),
):
    """Validate cluster.conf and the committed patches without generating anything."""
    config_dir = config_dir or Config.CONFIG_DIR
    committed_dir = committed_dir or Config.COMMITTED_PATCHES_DIR
    typer.echo(f"🔍 Validating cluster declaration: {config_dir / 'cluster.conf'}")
    with exit_on_error():
        spec = load_cluster_spec(config_dir / "cluster.conf")
        fragments = CommittedFragmentStore(committed_dir, config_dir / "patches").load(spec)
        check_conflicts(fragments)

    typer.echo(f"✅ Cluster '{spec.cluster_name}' is valid")
    for node in spec.nodes():
        typer.echo(f"  • {node.name}: {node.ip}")
    typer.echo(f"✅ {len(fragments)} committed patch(es) valid")
    for fragment in fragments:
        typer.echo(f"  • {fragment.name} ({fragment.scope})")
