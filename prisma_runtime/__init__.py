"""Engine binaries, CLI runs, query engine process control and data proxy access for Prisma clients."""

__version__ = "0.1.0"

__all__ = [
    "platform",
    "binaries",
    "unpack",
    "cli",
    "protocol",
    "transport",
    "query_engine",
    "data_proxy",
]