"""
spiffe-jwt CLI
Fetches a JWT SVID from the SPIFFE agent, writes it to a file and keeps it fresh.

Every flag can also be given through the environment variable of the same
name in upper case (e.g. --jwt-audience / JWT_AUDIENCE); flags win.
"""

import sys

import click

from . import __version__
from .config import EscalationStrategy, LogFormat, load_settings
from .daemon import SidecarDaemon
from .errors import ConfigurationError
from .utils.logging import configure_logging


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="spiffe-jwt")
@click.option("--daemon-mode/--one-shot", "daemon_mode", default=None,
              help="Keep refreshing in the background (default) or fetch once and exit. [DAEMON_MODE]")
@click.option("--health-port", type=int, default=None, help="Port to listen for health checks. [HEALTH_PORT]")
@click.option("--health-host", default=None, help="Address the health server binds to. [HEALTH_HOST]")
@click.option("--jwt-audience", default=None, help="Audience of the JWT. [JWT_AUDIENCE]")
@click.option("--jwt-file-name", default=None, help="Name of the file to write the JWT SVID to. [JWT_FILE_NAME]")
@click.option("--jwt-file-mode", default=None, help="Octal permission bits of the JWT file. [JWT_FILE_MODE]")
@click.option("--spiffe-agent-socket", default=None,
              help="File name of the SPIFFE agent socket. [SPIFFE_AGENT_SOCKET]")
@click.option("--refresh-interval-override", default=None,
              help="Override the default refresh interval (e.g., 30s, 5m). [REFRESH_INTERVAL_OVERRIDE]")
@click.option("--fetch-timeout", default=None, help="Upper bound for one fetch (e.g., 10s). [FETCH_TIMEOUT]")
@click.option("--escalation-strategy", type=click.Choice([s.value for s in EscalationStrategy]), default=None,
              help="What to do when a refresh fails. [ESCALATION_STRATEGY]")
@click.option("--pod-name", default=None, help="Pod hosting this sidecar (delete-pod). [POD_NAME]")
@click.option("--pod-namespace", default=None, help="Namespace of the pod (delete-pod). [POD_NAMESPACE]")
@click.option("--self-deletion-pause", default=None,
              help="Wait after requesting pod deletion (e.g., 60s). [SELF_DELETION_PAUSE]")
@click.option("--kubeconfig", default=None, help="Kubeconfig used outside the cluster. [KUBECONFIG]")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR. [LOG_LEVEL]")
@click.option("--log-format", type=click.Choice([f.value for f in LogFormat]), default=None,
              help="Log output format. [LOG_FORMAT]")
def main(**options):
    """SpiffeJWT periodically refreshes a JWT SVID and writes it to a file."""
    try:
        settings = load_settings(**options)
    except ConfigurationError as e:
        raise click.UsageError(e.message) from e

    configure_logging(settings.log_level, settings.log_format.value)
    sys.exit(SidecarDaemon(settings).run())


if __name__ == "__main__":
    main()
