import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import typer

from embedctl.commands import install, join
from embedctl.commands.common import cancel_event, reported_errors
from embedctl.config import Config
from embedctl.logging import quiet_noisy_loggers, setup_logger
from embedctl.modules.k0s import configuration, overrides, release
from embedctl.modules.k0s.errors import ImageMetadataError
from embedctl.modules.k0s.images import get_metadata

app = typer.Typer(help=f"{Config.BINARY_NAME} - embedded k0s cluster installer")

logger = logging.getLogger("embedctl")

# Global debug flag
debug_mode = False


# Configure logging
def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure logging based on debug mode."""
    level = logging.DEBUG if debug else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    root = setup_logger("embedctl", level, Config.LOG_FILE or None)
    # Disable debug logging for noisy libraries
    quiet_noisy_loggers(debug)
    return root


def _on_sigterm(signum, frame):
    logger.warning("⚠️  Received SIGTERM, cancelling")
    cancel_event.set()


# Add all command groups
app.add_typer(install.app, name="install")
app.add_typer(join.app, name="join")


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Install or join an embedded k0s cluster."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logger.debug("Debug mode enabled")

    try:
        Config.validate()
        get_metadata()
    except (ValueError, ImageMetadataError) as e:
        logger.critical(f"❌ {e}")
        raise typer.Exit(code=1)

    signal.signal(signal.SIGTERM, _on_sigterm)


@app.command("list-images", hidden=True)
def list_images(
    overrides_path: Optional[str] = typer.Option(None, "--overrides", help="EmbeddedClusterConfig overrides file"),
):
    """Print the images the installation will pull."""
    binary = Path(Config.EMBEDDED_BIN_DIR) / 'k0s'
    with reported_errors():
        cfg = configuration.render_config()
        fragments = overrides.fragments_for_install(release.get_embedded_cluster_config(), overrides_path)
        cfg = overrides.patch_config(cfg, fragments)
        for image in configuration.list_images(cfg, binary=str(binary)):
            typer.echo(image)


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logger.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logger.error(f"Error: {e}")
        sys.exit(1)
