"""
Development Supervisor Module

Runs the backend proxy and the admin UI side by side on dynamically
chosen ports, and cleans those ports up again on shutdown.
"""

from snapadmin.devserver.ports import NoFreePortError, PortAssignment, find_free_ports
from snapadmin.devserver.reclaim import PortReclaimer, ReclamationError, get_port_inspector
from snapadmin.devserver.supervisor import BackendHealthTimeoutError, Supervisor

__all__ = [
    "NoFreePortError",
    "PortAssignment",
    "find_free_ports",
    "PortReclaimer",
    "ReclamationError",
    "get_port_inspector",
    "BackendHealthTimeoutError",
    "Supervisor",
]
