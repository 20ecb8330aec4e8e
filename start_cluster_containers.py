#!/usr/bin/env python3
"""
Start and manage origin and target ScyllaDB containers for migration testing.
"""

import argparse
import os
import sys
import time

import docker
from docker.errors import NotFound

NETWORK_NAME = "table-migration-network"
ORIGIN_CONTAINER = "scylladb-migration-origin"
TARGET_CONTAINER = "scylladb-migration-target"

# Common Docker socket locations, tried when docker.from_env() fails
SOCKET_LOCATIONS = [
    "unix://~/.colima/default/docker.sock",
    "unix:///var/run/docker.sock",
    "unix://~/.docker/run/docker.sock",
]


def connect_docker():
    """
    Connect to the Docker daemon, trying common socket locations.

    Returns:
        docker.DockerClient
    """
    try:
        return docker.from_env()
    except Exception as e:
        print(f"Error connecting to Docker with default settings: {e}")
        print("\nTrying alternative Docker socket locations...")

    for socket_path in SOCKET_LOCATIONS:
        expanded_path = socket_path.replace("~", os.path.expanduser("~"))
        try:
            print(f"  Trying: {expanded_path}")
            client = docker.DockerClient(base_url=expanded_path)
            client.ping()
            print("  ✓ Connected successfully!")
            return client
        except Exception as socket_error:
            print(f"  ✗ Failed: {socket_error}")

    print("\nCould not connect to Docker daemon.")
    print("Make sure Docker (or Colima) is running, or set DOCKER_HOST.")
    sys.exit(1)


def ensure_network(client, network_name):
    """Ensure a Docker network exists for container communication."""
    try:
        client.networks.get(network_name)
        print(f"✓ Network '{network_name}' already exists")
    except NotFound:
        print(f"⟳ Creating network '{network_name}'...")
        client.networks.create(network_name, driver="bridge")
        print(f"✓ Network '{network_name}' created")


def scylla_config(name, image, cql_port):
    """Container settings for one single-node ScyllaDB cluster."""
    return {
        "name": name,
        "image": image,
        "ports": {"9042/tcp": cql_port},
        "detach": True,
        "remove": False,
        "command": "--smp 1 --memory 400M --overprovisioned 1 --api-address 0.0.0.0",
        "network": NETWORK_NAME,
    }


def main(argv=None):
    """Main function to start the origin and target clusters."""
    args = parse_arguments(argv)
    client = connect_docker()
    ensure_network(client, NETWORK_NAME)

    for role, name, port in (
        ("origin", ORIGIN_CONTAINER, args.origin_port),
        ("target", TARGET_CONTAINER, args.target_port),
    ):
        print("=" * 60)
        print(f"Managing {role} cluster container...")
        print("=" * 60)
        manage_container(client, scylla_config(name, args.image, port), args.max_retries)

    print("\n" + "=" * 60)
    print("All containers are ready!")
    print("=" * 60)
    print_connection_info(args.origin_port, args.target_port)


def manage_container(client, config, max_retries=60):
    """
    Create the container if it doesn't exist, start it if stopped, then
    wait until it accepts CQL connections.
    """
    container_name = config["name"]
    try:
        container = client.containers.get(container_name)
    except NotFound:
        print(f"✗ Container '{container_name}' does not exist")
        print(f"⟳ Pulling image '{config['image']}'...")
        client.images.pull(config["image"])
        container = client.containers.run(**config)
        print(f"✓ Container '{container_name}' created and started")
        wait_for_health(container, container_name, max_retries)
        return container

    print(f"✓ Container '{container_name}' exists")
    container.reload()
    if container.status in ("exited", "created"):
        print(f"⚠ Container '{container_name}' is {container.status}, starting it...")
        container.start()
    elif container.status != "running":
        print(f"⚠ Container '{container_name}' is in unexpected state: {container.status}")
        print("  Stopping and removing the container to recreate it...")
        container.stop(timeout=10)
        container.remove()
        container = client.containers.run(**config)
    wait_for_health(container, container_name, max_retries)
    return container


def wait_for_health(container, container_name, max_retries=60, delay=2):
    """Poll cqlsh inside the container until the node answers."""
    print(f"⟳ Waiting for '{container_name}' to be ready...")
    for attempt in range(max_retries):
        container.reload()
        if container.status != "running":
            print(f"✗ Container '{container_name}' stopped unexpectedly")
            logs = container.logs(tail=20).decode('utf-8', errors='replace')
            print(f"Recent logs:\n{logs}")
            sys.exit(1)
        if check_scylladb_health(container):
            print(f"✓ Container '{container_name}' is healthy and accepting connections")
            return
        print(f"  Not ready yet (attempt {attempt + 1}/{max_retries})")
        time.sleep(delay)

    print(f"✗ '{container_name}' health check failed after {max_retries} attempts")
    sys.exit(1)


def check_scylladb_health(container):
    """Return True if cqlsh inside the container can list keyspaces."""
    try:
        result = container.exec_run(["cqlsh", "-e", "DESCRIBE KEYSPACES;"], demux=False)
    except docker.errors.APIError:
        return False
    return result.exit_code == 0


def print_connection_info(origin_port, target_port):
    """Print how to point migrate_tables.py at the two clusters."""
    print("\n📝 Connection Information:")
    print(f"  Origin: localhost:{origin_port} (container {ORIGIN_CONTAINER})")
    print(f"  Target: localhost:{target_port} (container {TARGET_CONTAINER})")
    print("\nTo migrate:")
    print(f"  python3 migrate_tables.py --export-host localhost:{origin_port} "
          f"--import-host localhost:{target_port}")
    print("\nTo remove everything:")
    print("  python3 destroy_cluster_containers.py")


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Start origin and target ScyllaDB containers for migration testing",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('--image', default='scylladb/scylla:2025.4',
                        help='ScyllaDB image for both clusters')
    parser.add_argument('--origin-port', type=int, default=9042,
                        help='Host port mapped to the origin CQL port')
    parser.add_argument('--target-port', type=int, default=9043,
                        help='Host port mapped to the target CQL port')
    parser.add_argument('--max-retries', type=int, default=60,
                        help='Health check attempts, two seconds apart')
    return parser.parse_args(argv)


if __name__ == "__main__":
    main()
