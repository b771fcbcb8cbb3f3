"""k0s service management.

This module is the only place that hands the resolved proxy settings to a
child process: the k0s installer and service start inherit them through
their environment.
"""

import logging
import os
import shlex
import shutil
from pathlib import Path
from typing import List, Optional

from embedctl.config import Config
from .errors import ConfigurationError
from .goods import path_to_binary
from .models import JoinCommand, ProxySpec
from .utils import run_command

logger = logging.getLogger("embedctl.k0s.service")


def is_already_installed() -> bool:
    """True when the install marker (the k0s config file) exists.

    Raises:
        OSError: If the marker cannot be checked for a reason other than absence
    """
    try:
        os.stat(Config.K0S_CONFIG_PATH)
    except FileNotFoundError:
        return False
    return True


def install_flags(config_path: Optional[str] = None) -> List[str]:
    """Flags for a single node controller install."""
    return [
        'install', 'controller',
        '--enable-worker',
        '--no-taints',
        '-c', str(config_path or Config.K0S_CONFIG_PATH),
    ]


def join_flags(jcmd: JoinCommand, token_file: str, config_path: Optional[str] = None) -> List[str]:
    """Flags for joining an existing cluster, taken from the join command.

    Raises:
        ConfigurationError: If the join command is not a k0s install command
    """
    parts = shlex.split(jcmd.k0s_join_command)
    if 'install' not in parts:
        raise ConfigurationError(f"unexpected k0s join command: {jcmd.k0s_join_command!r}")
    flags = parts[parts.index('install'):]
    flags += ['--token-file', token_file, '--force']
    if jcmd.is_controller:
        flags += ['-c', str(config_path or Config.K0S_CONFIG_PATH)]
    return flags


def write_join_token(token: str) -> str:
    """Store the k0s join token where ``--token-file`` can read it."""
    path = Config.join_token_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(token)
    return str(path)


def install_k0s(flags: List[str], proxy: Optional[ProxySpec] = None) -> None:
    """Move k0s to its host path, install it, and start the service.

    Raises:
        OSError: If the binary cannot be relocated
        CommandError: If ``k0s install`` or ``k0s start`` fails
    """
    ourbin = path_to_binary('k0s')
    hstbin = Path(Config.K0S_BINARY_PATH)
    hstbin.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(ourbin), str(hstbin))
    os.chmod(hstbin, 0o755)
    logger.debug(f"Moved {ourbin} to {hstbin}")

    env = proxy.to_env() if proxy else None
    logger.info(f"🚀 Installing k0s ({' '.join(flags[:2])})")
    run_command([str(hstbin)] + flags, env=env)
    logger.info("🚀 Starting k0s")
    run_command([str(hstbin), 'start'], env=env)


def run_post_install(unit: Optional[str] = None) -> None:
    """Alias the k0s unit under the binary's name and reload systemd.

    Args:
        unit: k0s unit to alias; defaults to the controller unit

    Raises:
        OSError: If the symlink cannot be created
        CommandError: If ``systemctl daemon-reload`` fails
    """
    src = Path(Config.SYSTEMD_DIR) / (unit or Config.K0S_SERVICE_UNIT)
    dst = Config.service_alias_path()
    os.symlink(src, dst)
    logger.debug(f"Linked {dst} -> {src}")
    run_command(['systemctl', 'daemon-reload'])


def k0s_status() -> str:
    """Run ``k0s status``; raises CommandError when the node is not healthy."""
    return run_command([str(Config.K0S_BINARY_PATH), 'status'])
