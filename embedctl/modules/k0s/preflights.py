"""Host preflight execution and gating.

Collectors and analyzers are executed by the materialized
``kubectl-preflight`` binary; this module only aggregates the verdicts and
decides whether the installation may continue.

Gating policy:

- any failure: print the results and raise ``PreflightsFailed``
- warnings with ``--no-prompt``: print the results and continue
- warnings otherwise: print the results and ask the operator
- nothing to report: print the results and continue
"""

import json
import logging
import os
import subprocess
import tempfile
from dataclasses import asdict
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from .errors import PreflightRunError, PreflightsFailed, UserAbort
from .goods import path_to_binary
from .models import HostPreflightSpec, PreflightContext, PreflightOutput, ProxySpec, Verdict

logger = logging.getLogger("embedctl.k0s.preflights")

PREFLIGHT_BINARY = 'kubectl-preflight'

# kubectl-preflight exits 3 on failures and 4 on warnings; the JSON is still valid
_RESULT_EXIT_CODES = (0, 3, 4)

console = Console(stderr=True)

_VERDICT_STYLE = {
    Verdict.PASS: ("✅", "green"),
    Verdict.WARN: ("⚠️ ", "yellow"),
    Verdict.FAIL: ("❌", "red"),
}


def _spec_document(spec: HostPreflightSpec) -> dict:
    return {
        'apiVersion': 'troubleshoot.sh/v1beta2',
        'kind': 'HostPreflight',
        'metadata': {'name': 'embedctl'},
        'spec': asdict(spec),
    }


def run(spec: HostPreflightSpec, proxy: Optional[ProxySpec] = None) -> PreflightOutput:
    """Execute ``spec`` and return the aggregated verdicts.

    HTTP collectors reach out through ``proxy`` when one is set.

    Raises:
        PreflightRunError: If the preflight binary cannot run or its output is unreadable
    """
    binary = str(path_to_binary(PREFLIGHT_BINARY))
    fd, spec_path = tempfile.mkstemp(prefix='host-preflight-', suffix='.yaml')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.safe_dump(_spec_document(spec), f, default_flow_style=False, sort_keys=False)

        cmd = [binary, '--interactive=false', '--format=json', spec_path]
        env = None
        if proxy is not None and proxy.enabled:
            env = dict(os.environ)
            env.update(proxy.to_env())
        logger.debug(f"running command: {cmd}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False, env=env)
        except OSError as e:
            raise PreflightRunError(f"unable to run {binary}: {e}") from e
    finally:
        os.unlink(spec_path)

    if result.returncode not in _RESULT_EXIT_CODES:
        logger.debug(f"stdout: {result.stdout}")
        logger.debug(f"stderr: {result.stderr}")
        raise PreflightRunError(f"{PREFLIGHT_BINARY} exited with status {result.returncode}: {result.stderr.strip()}")
    try:
        data = json.loads(result.stdout or '{}')
    except json.JSONDecodeError as e:
        logger.debug(f"stdout: {result.stdout}")
        raise PreflightRunError(f"unable to decode preflight output: {e}") from e
    if not isinstance(data, dict):
        raise PreflightRunError("unexpected preflight output format")
    return PreflightOutput.from_json(data)


def print_table(output: PreflightOutput, out: Optional[Console] = None) -> None:
    """Render the preflight results as a table."""
    out = out or console
    table = Table(title="Host preflights")
    table.add_column("Status", no_wrap=True)
    table.add_column("Check")
    table.add_column("Details")
    # failures first so they are visible without scrolling
    for verdict in (Verdict.FAIL, Verdict.WARN, Verdict.PASS):
        icon, style = _VERDICT_STYLE[verdict]
        for record in output.by_verdict(verdict):
            table.add_row(f"{icon} {verdict.value}", record.title, record.message, style=style)
    out.print(table)


def gate(output: PreflightOutput, no_prompt: bool, out: Optional[Console] = None) -> None:
    """Apply the gating policy to ``output``.

    Raises:
        PreflightsFailed: If any check failed
        UserAbort: If the operator declines to continue past warnings
    """
    print_table(output, out)
    if output.has_fail():
        logger.error("❌ Host preflights have failures")
        raise PreflightsFailed()
    if not output.has_warn():
        logger.info("✅ Host preflights passed")
        return
    logger.warning("⚠️  Host preflights have warnings")
    if no_prompt:
        return
    if not typer.confirm("Do you want to continue ?", default=False):
        raise UserAbort()


def run_host_preflights(
    spec: HostPreflightSpec,
    no_prompt: bool,
    out: Optional[Console] = None,
    proxy: Optional[ProxySpec] = None,
) -> Optional[PreflightOutput]:
    """Run and gate host preflights; returns None when there was nothing to run."""
    if spec.is_empty():
        logger.debug("No host preflights configured, skipping")
        return None
    out = out or console
    with out.status("Running host preflights on node"):
        output = run(spec, proxy)
    gate(output, no_prompt, out)
    return output


def build_context(
    replicated_api_url: str,
    proxy_registry_url: str,
    options,
) -> PreflightContext:
    """Preflight template context from install or join options."""
    return PreflightContext(
        replicated_api_url=replicated_api_url,
        proxy_registry_url=proxy_registry_url,
        is_airgap=options.is_airgap,
        proxy=options.proxy,
        admin_console_port=options.admin_console_port,
        local_artifact_mirror_port=options.local_artifact_mirror_port,
    )
