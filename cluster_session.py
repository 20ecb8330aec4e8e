"""
Open driver sessions against the origin and target clusters.

Direct (non-cloud) sessions only ever connect to the configured contact
points: every other node discovered through the system tables is filtered
out of the load-balancing plan, so the driver never opens a pool to it.
"""

import logging
import socket

from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile
from cassandra.connection import DefaultEndPoint
from cassandra.policies import DCAwareRoundRobinPolicy, HostFilterPolicy

from migration_errors import ClusterConnectionError

logger = logging.getLogger(__name__)


def resolve_contact_points(contact_points):
    """
    Resolve (host, port) contact points to the (address, port) pairs the
    driver reports for connected nodes.

    Returns:
        List of (address, port) tuples, in contact point order, without duplicates
    """
    resolved = []
    for host, port in contact_points:
        for _, _, _, _, sockaddr in socket.getaddrinfo(
            host, port, type=socket.SOCK_STREAM
        ):
            if (sockaddr[0], port) not in resolved:
                resolved.append((sockaddr[0], port))
    return resolved


def contact_point_filter(allowed):
    """Build a HostFilterPolicy predicate admitting only the given addresses."""
    allowed = set(allowed)

    def predicate(host):
        endpoint = host.endpoint
        return (endpoint.address, endpoint.port) in allowed

    return predicate


def build_load_balancing_policy(cluster_info, resolved=None):
    # DCAwareRoundRobinPolicy without a local_dc infers it from the contact points
    child_policy = DCAwareRoundRobinPolicy()
    if cluster_info.is_cloud:
        return child_policy
    if resolved is None:
        resolved = resolve_contact_points(cluster_info.contact_points)
    return HostFilterPolicy(
        child_policy=child_policy,
        predicate=contact_point_filter(resolved),
    )


def build_cluster_options(cluster_info, credentials=None):
    """Keyword arguments for cassandra.cluster.Cluster."""
    options = {}
    resolved = None
    if cluster_info.is_cloud:
        options["cloud"] = {"secure_connect_bundle": str(cluster_info.bundle)}
    else:
        # the driver keeps EndPoint contact points as given, so hand it the
        # addresses the node filter admits
        resolved = resolve_contact_points(cluster_info.contact_points)
        options["contact_points"] = [DefaultEndPoint(address, port) for address, port in resolved]
        # nodes found through system.peers get this port
        options["port"] = cluster_info.port

    profile = ExecutionProfile(
        load_balancing_policy=build_load_balancing_policy(cluster_info, resolved)
    )
    options["execution_profiles"] = {EXEC_PROFILE_DEFAULT: profile}

    if credentials is not None:
        options["auth_provider"] = PlainTextAuthProvider(
            username=credentials.username,
            password=credentials.password,
        )
    return options


def create_session(cluster_info, credentials=None, log=None):
    """
    Connect to a cluster.

    Args:
        cluster_info: ClusterInfo for the origin or target cluster
        credentials: Credentials, or None to connect without authentication
        log: Logger to report progress to (defaults to this module's logger)

    Returns:
        A connected cassandra Session; shut it down with session.cluster.shutdown()

    Raises:
        ClusterConnectionError: the cluster could not be contacted
    """
    log = log or logger
    role = cluster_info.role
    log.info("Contacting %s cluster...", role)

    cluster = None
    try:
        cluster = Cluster(**build_cluster_options(cluster_info, credentials))
        session = cluster.connect()
    except Exception as e:
        if cluster is not None:
            cluster.shutdown()
        raise ClusterConnectionError(role) from e

    log.info("Successfully contacted %s cluster", role)
    return session
