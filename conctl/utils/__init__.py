"""Utility functions and helpers for the conctl application."""
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..config import Config
from ..logging import mask

logger = logging.getLogger("conctl.utils")


class _BlockStyleDumper(yaml.SafeDumper):
    """SafeDumper that emits multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockStyleDumper.add_representer(str, _represent_str)


def dump_yaml(data: Any) -> str:
    """Serialize a document deterministically, keeping key insertion order."""
    return yaml.dump(
        data,
        Dumper=_BlockStyleDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def write_text_atomic(path: Union[str, Path], text: str, mode: int = 0o600) -> Path:
    """Write a file so readers see either the old content or the new, never a partial file.

    Args:
        path: Destination path
        text: Content to write
        mode: File permissions (default: 0o600)

    Returns:
        The destination path

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def write_yaml_file(path: Union[str, Path], data: Dict[str, Any], mode: int = 0o600) -> Path:
    """Write a YAML file with the given data atomically."""
    return write_text_atomic(path, dump_yaml(data), mode=mode)


def read_yaml_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML file and return its contents as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(f"YAML file not found: {path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {path}: {e}")
        raise


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with sensitive values redacted
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(
                redact_key.lower() == str(k).lower()
                for redact_key in Config.REDACT_KEYS
            ) else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data


def run_command(
    cmd: List[str],
    *,
    timeout: Optional[float] = None,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """Run an external command, capturing output.

    The command is never run through a shell. A non-zero exit status is
    returned to the caller rather than raised, so each wrapper can map it to
    its own error type.

    Raises:
        FileNotFoundError: If the binary does not exist
        subprocess.TimeoutExpired: If the command runs longer than timeout
    """
    cmd_str = mask(' '.join(str(part) for part in cmd))
    logger.debug(f"💻 Running: {cmd_str}")
    result = subprocess.run(
        [str(part) for part in cmd],
        text=True,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        timeout=timeout,
        check=False,
    )
    if result.returncode != 0:
        logger.debug(f"🔴 {cmd_str} exited with {result.returncode}")
    return result


def is_within(path: Union[str, Path], parent: Union[str, Path]) -> bool:
    """True if path is parent or lies below it, after resolving both."""
    try:
        Path(path).resolve().relative_to(Path(parent).resolve())
        return True
    except ValueError:
        return False
