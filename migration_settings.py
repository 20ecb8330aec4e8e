"""
Settings for a table migration run.

The settings are built once from the command line (see migrate_tables.py)
and then shared read-only by every worker thread.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from migration_errors import ConfigurationError

DEFAULT_CQL_PORT = 9042
DEFAULT_KEYSPACES = r"^(?!system|dse|OpsCenter)\w+$"
DEFAULT_TABLES = r".*"


def parse_contact_point(value, default_port=DEFAULT_CQL_PORT):
    """
    Parse a ``host``, ``host:port`` or ``[ipv6]:port`` string.

    Returns:
        (host, port) tuple
    """
    value = value.strip()
    if not value:
        raise ConfigurationError("Empty host in contact points")

    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep:
            raise ConfigurationError(f"Invalid host '{value}': missing ']'")
        port = rest[1:] if rest.startswith(":") else None
    elif value.count(":") == 1:
        host, port = value.split(":")
    else:
        # bare hostname, IPv4 or unbracketed IPv6 address
        host, port = value, None

    if port is None or port == "":
        return host, default_port
    try:
        return host, int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid port in host '{value}'") from None


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str


@dataclass(frozen=True)
class ClusterInfo:
    """Connection info for one side of the migration."""

    origin: bool
    contact_points: Tuple[Tuple[str, int], ...] = ()
    bundle: Optional[Path] = None

    @property
    def role(self):
        return "origin" if self.origin else "target"

    @property
    def is_cloud(self):
        return self.bundle is not None

    @property
    def port(self):
        """The CQL port of the first contact point."""
        if not self.contact_points:
            return DEFAULT_CQL_PORT
        return self.contact_points[0][1]

    @property
    def host_string(self):
        """Contact points joined for the tool's ``-h ["..."]`` option."""
        hosts = []
        for host, port in self.contact_points:
            if ":" in host:
                host = f"[{host}]"
            hosts.append(f"{host}:{port}")
        return '","'.join(hosts)


@dataclass(frozen=True)
class MigrationSettings:
    export_cluster: ClusterInfo
    import_cluster: ClusterInfo
    data_dir: Path = Path("data")
    dsbulk_log_dir: Path = Path("logs")
    dsbulk_cmd: str = "dsbulk"

    export_username: Optional[str] = None
    export_password: Optional[str] = None
    export_consistency: str = "LOCAL_QUORUM"
    export_max_records: int = -1
    export_max_concurrent_files: str = "AUTO"
    export_max_concurrent_queries: str = "AUTO"
    export_splits: str = "8C"

    import_username: Optional[str] = None
    import_password: Optional[str] = None
    import_consistency: str = "LOCAL_QUORUM"
    import_max_concurrent_files: str = "AUTO"
    import_max_concurrent_queries: str = "AUTO"
    # microseconds since epoch, for cells whose write time cannot be exported
    import_default_timestamp: int = 0

    num_threads: int = 1
    keyspaces: str = DEFAULT_KEYSPACES
    tables: str = DEFAULT_TABLES
    skip_import: bool = False

    @property
    def export_credentials(self):
        if self.export_username is None:
            return None
        return Credentials(self.export_username, self.export_password)

    @property
    def import_credentials(self):
        if self.import_username is None:
            return None
        return Credentials(self.import_username, self.import_password)

    def validate(self):
        """Raise ConfigurationError if these settings cannot drive a migration."""
        clusters = [(self.export_cluster, self.export_username, self.export_password)]
        if not self.skip_import:
            clusters.append((self.import_cluster, self.import_username, self.import_password))
        for cluster, username, password in clusters:
            if cluster.is_cloud and cluster.contact_points:
                raise ConfigurationError(
                    f"The {cluster.role} cluster takes either a secure bundle or hosts, not both"
                )
            if not cluster.is_cloud and not cluster.contact_points:
                raise ConfigurationError(
                    f"The {cluster.role} cluster needs a secure bundle or at least one host"
                )
            # nodes discovered through system.peers are all reached on one port
            ports = sorted({port for _, port in cluster.contact_points})
            if len(ports) > 1:
                raise ConfigurationError(
                    f"All {cluster.role} contact points must use the same port, got {ports}"
                )
            if (username is None) != (password is None):
                raise ConfigurationError(
                    f"The {cluster.role} cluster needs both a username and a password"
                )

        if self.num_threads < 1:
            raise ConfigurationError(f"Invalid thread count: {self.num_threads}")

        for name, pattern in (("keyspaces", self.keyspaces), ("tables", self.tables)):
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid {name} regex '{pattern}': {e}") from e
        return self
