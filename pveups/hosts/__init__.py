"""
Host power control for pveups.

Flushes filesystems and powers off the Proxmox node at the end of a
shutdown sequence.
"""

from pveups.hosts.power import HostPower, LocalHostPower

__all__ = ["HostPower", "LocalHostPower"]
