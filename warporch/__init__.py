"""
warporch - Warp-route deployment orchestrator

Decodes a warp-route configuration, plans the core and warp-route
deployments it needs, executes them across chains and reports one result.
"""

__version__ = "0.1.0"


__all__ = ["WarporchConfig", "load_config", "get_warporch_home"]

from .config import WarporchConfig, load_config, get_warporch_home
