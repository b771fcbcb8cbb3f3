"""Binary materialization.

Copies the binaries shipped with embedctl (k0s, kubectl-preflight, ...) into
the host data directory. Running it again overwrites the copies in place.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List

from embedctl.config import Config
from .errors import ConfigurationError

logger = logging.getLogger("embedctl.k0s.goods")


def materialize() -> List[Path]:
    """Copy embedded binaries into ``Config.BIN_DIR``.

    Returns:
        list: Paths of the materialized binaries

    Raises:
        ConfigurationError: If the embedded binaries are missing
        OSError: If a copy fails
    """
    source = Path(Config.EMBEDDED_BIN_DIR)
    target = Path(Config.BIN_DIR)
    if not source.is_dir():
        raise ConfigurationError(f"embedded binaries not found at {source}")

    target.mkdir(parents=True, exist_ok=True)
    written = []
    for binary in sorted(p for p in source.iterdir() if p.is_file()):
        dst = target / binary.name
        shutil.copyfile(binary, dst)
        os.chmod(dst, 0o755)
        written.append(dst)
        logger.debug(f"Materialized {binary.name} to {dst}")
    logger.info(f"📦 Materialized {len(written)} binaries into {target}")
    return written


def path_to_binary(name: str) -> Path:
    """Location of a materialized binary."""
    return Path(Config.BIN_DIR) / name
