from pathlib import Path

import typer

from conctl.commands import exit_on_error
from conctl.config import Config
from conctl.modules.helm import HelmRenderer
from conctl.modules.pipeline import Pipeline, settings_from
from conctl.modules.secret_patches import load_registry_credentials
from conctl.modules.talos import TalosctlCompiler

app = typer.Typer()


@app.command("patches")
def generate_patches(
    config_dir: Path = typer.Option(None, help="Configuration directory (default: $CONFIG_DIR or .con)"),
    committed_dir: Path = typer.Option(None, help="Committed patches directory (default: setup/patches)"),
    cilium_values: Path = typer.Option(None, help="Cilium Helm values file"),
    skip_cni: bool = typer.Option(False, "--skip-cni", help="Do not render the CNI inline manifest"),
    helm_timeout: int = typer.Option(None, help="Seconds to allow each helm invocation"),
):
    """Generate the SECRET patches (registry auth, CNI) into the ephemeral patches directory."""
    settings = settings_from(config_dir, committed_dir, cilium_values, skip_cni)
    with exit_on_error():
        credentials = load_registry_credentials(envhost_path=Config.ENVHOST_FILE)
        result = Pipeline(settings, HelmRenderer(timeout=helm_timeout)).generate_patches(credentials)

    typer.echo("✅ Secret patches generated!")
    for path in result.secret_paths:
        typer.echo(f"  • {path}")
    typer.echo("")
    typer.echo("📝 Next steps:")
    typer.echo(f"  1. Ensure non-sensitive patches exist in {settings.committed_dir}/")
    typer.echo("  2. Run: conctl generate configs")


@app.command("configs")
def generate_configs(
    config_dir: Path = typer.Option(None, help="Configuration directory (default: $CONFIG_DIR or .con)"),
    committed_dir: Path = typer.Option(None, help="Committed patches directory (default: setup/patches)"),
    cilium_values: Path = typer.Option(None, help="Cilium Helm values file"),
    skip_cni: bool = typer.Option(False, "--skip-cni", help="Do not render the CNI inline manifest"),
    talosconfig: Path = typer.Option(None, help="Where to copy the generated talosconfig"),
    helm_timeout: int = typer.Option(None, help="Seconds to allow each helm invocation"),
    talosctl_timeout: int = typer.Option(None, help="Seconds to allow each talosctl invocation"),
):
    """Generate per-node machine configurations and the talosconfig."""
    settings = settings_from(config_dir, committed_dir, cilium_values, skip_cni, talosconfig)
    typer.echo("🔧 Generating machine configurations...")
    with exit_on_error():
        credentials = load_registry_credentials(envhost_path=Config.ENVHOST_FILE)
        pipeline = Pipeline(
            settings,
            HelmRenderer(timeout=helm_timeout),
            TalosctlCompiler(timeout=talosctl_timeout),
        )
        result = pipeline.generate_configs(credentials)

    typer.echo("✅ Configuration Generation Complete!")
    typer.echo("")
    typer.echo("📁 Files generated:")
    for config in result.machine_configs:
        typer.echo(f"  • {config.hostname} ({config.node.ip}): {config.path}")
    bundle = result.credential_bundle
    typer.echo(f"  • Talos config: {bundle.operator_path or bundle.path}")
    typer.echo("")
    typer.echo("📝 Next steps:")
    typer.echo("  1. Boot your physical nodes with the Talos ISO")
    typer.echo(f"  2. Ensure nodes receive IPs: {' '.join(c.node.ip for c in result.machine_configs)}")
    typer.echo("  3. Apply each config with talosctl apply-config, then bootstrap")
