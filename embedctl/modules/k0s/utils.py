"""Utility functions for the k0s bootstrap engine."""

import logging
import os
import subprocess
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml

from .errors import CommandError

logger = logging.getLogger("embedctl.k0s.utils")


def run_command(cmd: Sequence[str], env: Optional[Mapping[str, str]] = None) -> str:
    """Run a command to completion and return its stdout.

    Output is captured; on failure stdout and stderr are logged at debug level
    and a CommandError is raised. Nothing here retries.

    Args:
        cmd: Program and arguments
        env: Extra environment variables layered over the current environment

    Returns:
        str: Captured standard output

    Raises:
        CommandError: If the process cannot be spawned or exits non-zero
    """
    cmd = [str(part) for part in cmd]
    logger.debug(f"running command: {cmd}")

    child_env = None
    if env:
        child_env = dict(os.environ)
        child_env.update(env)

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, env=child_env, check=False)
    except OSError as e:
        logger.debug(f"failed to spawn {cmd[0]}: {e}")
        raise CommandError(cmd, None, stderr=str(e)) from e

    if result.returncode != 0:
        logger.debug("failed to run command:")
        logger.debug(f"stdout: {result.stdout}")
        logger.debug(f"stderr: {result.stderr}")
        raise CommandError(cmd, result.returncode, result.stdout, result.stderr)
    return result.stdout


def write_yaml_file(path: str, data: Dict[str, Any], mode: int = 0o600, exclusive: bool = False) -> None:
    """Write a YAML file with the given data.

    Args:
        path: Path to the YAML file
        data: Data to write as YAML
        mode: File permissions (default: 0o600)
        exclusive: Fail if the file already exists

    Raises:
        FileExistsError: If exclusive is set and the file exists
        OSError: If the file cannot be written
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), mode=0o755, exist_ok=True)
        flags = os.O_WRONLY | os.O_CREAT | (os.O_EXCL if exclusive else os.O_TRUNC)
        fd = os.open(path, flags, mode)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, mode)
    except OSError as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise


def nested_get(data: Mapping[str, Any], *keys: str) -> Any:
    """Walk nested mappings, returning None when any key is missing."""
    current: Any = data
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current
