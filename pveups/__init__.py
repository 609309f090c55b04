"""
pveups - UPS-driven layered shutdown orchestrator for Proxmox VE nodes.
"""

__version__ = "1.1.0"
