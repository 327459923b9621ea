# src/pantry_client/transport/factory.py

from pantry_client.config import PantryConfig
from pantry_client.observability.base import MetricsHook, NoOpMetricsHook

from .base import Transport


def create_transport(
    config: PantryConfig,
    metrics_hook: MetricsHook = NoOpMetricsHook(),
) -> Transport:
    """Create a transport from config.

    Args:
        config: Connection configuration; `transport` picks the kind.
        metrics_hook: Optional metrics hook for observability.

    Returns:
        Configured Transport implementation.

    Raises:
        ValueError: If the transport type is unknown.

    Example:
        >>> config = PantryConfig(transport="unix")
        >>> transport = create_transport(config)
    """
    from .http import HttpTransport

    if config.transport == "unix":
        return HttpTransport.over_unix_socket(
            config.socket_path,
            timeout=config.timeout,
            metrics_hook=metrics_hook,
        )

    if config.transport == "tcp":
        return HttpTransport.over_tcp(
            config.base_url,
            timeout=config.timeout,
            verify=config.verify,
            metrics_hook=metrics_hook,
        )

    raise ValueError(f"Unknown transport: {config.transport}")
