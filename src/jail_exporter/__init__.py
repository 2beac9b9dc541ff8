"""jail_exporter - Prometheus exporter for FreeBSD jails.

Exports per-jail resource usage, as reported by rctl(8), over HTTP or to a
node_exporter textfile.
"""

__version__ = "0.1.0"


class ExporterError(Exception):
    """Base class for errors that may reach the process boundary."""

    pass


__all__ = ["ExporterError", "__version__"]
