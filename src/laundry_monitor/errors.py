"""
Error taxonomy for the ingestion pipeline.

Each error carries the status code a transport layer should answer with.
"""


class LaundryMonitorError(Exception):
    """Base class for all laundry-monitor errors."""

    status_code = 500


class InvalidArgument(LaundryMonitorError, ValueError):
    """Missing MAC address, malformed batch, or invalid configuration."""

    status_code = 400


class NotFound(LaundryMonitorError, LookupError):
    """Unknown sensor, machine, or a sensor without machine links."""

    status_code = 404


class PersistenceFailure(LaundryMonitorError, RuntimeError):
    """The event store could not apply a write."""

    status_code = 500
