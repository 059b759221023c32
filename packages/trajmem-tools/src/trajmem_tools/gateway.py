from __future__ import annotations

from fastmcp import FastMCP

from trajmem_tools.optimizer_server import optimizer_server
from trajmem_tools.strategies_server import strategies_server
from trajmem_tools.trajectories_server import trajectories_server


def create_gateway() -> FastMCP:
    """Create the Trajmem MCP gateway composing all tool servers.

    Tool namespaces:
    - trajectories.*  Trajectory recording, scoring, summaries and search
    - optimize.*      Region rewrite lifecycle and example curation
    - strategies.*    Strategy selection and usage tracking
    """
    gateway = FastMCP("trajmem-gateway")
    gateway.mount(trajectories_server, prefix="trajectories")
    gateway.mount(optimizer_server, prefix="optimize")
    gateway.mount(strategies_server, prefix="strategies")
    return gateway


# Singleton gateway instance
gateway = create_gateway()


def main() -> None:
    """Serve the gateway over stdio."""
    from trajmem_core.config import TrajmemConfig
    from trajmem_core.logging import setup_logging

    config = TrajmemConfig.load()
    setup_logging(config.logging.level, json_output=config.logging.json)
    gateway.run()
