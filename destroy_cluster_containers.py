#!/usr/bin/env python3
"""
Destroy the origin and target ScyllaDB containers and their Docker network.
"""

import sys

from docker.errors import NotFound

from start_cluster_containers import (
    NETWORK_NAME,
    ORIGIN_CONTAINER,
    TARGET_CONTAINER,
    connect_docker,
)


def main():
    """Main function to destroy the cluster containers."""
    client = connect_docker()

    print("=" * 60)
    print("Destroying Table Migration Test Clusters")
    print("=" * 60)

    print("\n[1/3] Removing origin container...")
    remove_container(client, ORIGIN_CONTAINER)

    print("\n[2/3] Removing target container...")
    remove_container(client, TARGET_CONTAINER)

    print("\n[3/3] Removing Docker network...")
    remove_network(client, NETWORK_NAME)

    print("\n" + "=" * 60)
    print("✓ Test clusters destroyed")
    print("=" * 60)
    print("\nNote: exported data and ack markers on the host were kept.")
    print("To recreate the clusters, run: python3 start_cluster_containers.py")


def remove_container(client, container_name):
    """
    Stop and remove a container if it exists.

    Returns:
        True if a container was removed
    """
    try:
        container = client.containers.get(container_name)
    except NotFound:
        print(f"  ℹ Container '{container_name}' does not exist (already removed)")
        return False

    print(f"  Found container '{container_name}' (status: {container.status})")
    if container.status == "running":
        print("  ⟳ Stopping container...")
        container.stop(timeout=10)
    container.remove(v=True)  # v=True removes associated volumes
    print(f"  ✓ Container '{container_name}' removed")
    return True


def remove_network(client, network_name):
    """
    Remove a Docker network if it exists.

    Returns:
        True if the network was removed
    """
    try:
        network = client.networks.get(network_name)
    except NotFound:
        print(f"  ℹ Network '{network_name}' does not exist (already removed)")
        return False

    containers = network.attrs.get('Containers', {})
    if containers:
        print(f"  ⚠ Warning: Network still has {len(containers)} container(s) connected")
    network.remove()
    print(f"  ✓ Network '{network_name}' removed")
    return True


if __name__ == "__main__":
    print("⚠ WARNING: This will destroy the following resources:")
    print(f"  - Origin container ({ORIGIN_CONTAINER})")
    print(f"  - Target container ({TARGET_CONTAINER})")
    print(f"  - Docker network ({NETWORK_NAME})")
    print("  - All data in the containers")
    print()

    response = input("Are you sure you want to continue? (yes/no): ")

    if response.lower() in ['yes', 'y']:
        main()
    else:
        print("\nOperation cancelled.")
        sys.exit(0)
