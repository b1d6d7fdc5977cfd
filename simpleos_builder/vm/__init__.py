"""VirtualBox conversion and QEMU debug launches."""

from .qemu import debug_launch
from .virtualbox import convert_to_vdi, start_vm

__all__ = ["convert_to_vdi", "debug_launch", "start_vm"]
