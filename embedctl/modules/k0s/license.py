"""License matching against the release embedded in the binary."""

import logging
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import LicenseMismatchError
from .release import get_channel_release

logger = logging.getLogger("embedctl.k0s.license")


class LicenseSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    license_id: str = Field(default="", alias="licenseID")
    app_slug: str = Field(alias="appSlug")
    channel_id: str = Field(default="", alias="channelID")
    channel_name: str = Field(default="", alias="channelName")
    endpoint: str = ""


class License(BaseModel):
    model_config = ConfigDict(extra="ignore")

    spec: LicenseSpec


def parse_license(path: str) -> License:
    """Read the license file at ``path``.

    Raises:
        LicenseMismatchError: If the file is missing or corrupt
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return License.model_validate(yaml.safe_load(f) or {})
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise LicenseMismatchError(
            f"unable to parse the license file at {path!r}, please ensure it is not corrupt: {e}"
        ) from e


def check_license_matches(license_path: Optional[str]) -> Optional[License]:
    """Make sure the license belongs to the application and channel of this binary.

    Returns:
        The parsed license, or None when neither a license nor a release exists

    Raises:
        LicenseMismatchError: On any mismatch
    """
    rel = get_channel_release()

    if rel is None and not license_path:
        return None
    if rel is None:
        raise LicenseMismatchError(
            "a license was provided but no release was found in binary, "
            "please rerun without the license flag"
        )
    if not license_path:
        raise LicenseMismatchError(
            f"no license was provided for {rel.app_slug} and one is required, "
            "please rerun with '--license <path to license file>'"
        )

    lic = parse_license(license_path)
    if rel.app_slug != lic.spec.app_slug:
        raise LicenseMismatchError(
            f"license app {lic.spec.app_slug} does not match binary app {rel.app_slug}, "
            "please provide the correct license"
        )
    if rel.channel_id != lic.spec.channel_id:
        raise LicenseMismatchError(
            f"license channel {lic.spec.channel_id} ({lic.spec.channel_name}) does not match "
            f"binary channel {rel.channel_id}, please provide the correct license"
        )
    logger.debug(f"License matches {rel.app_slug} channel {rel.channel_id}")
    return lic
