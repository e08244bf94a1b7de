"""Prometheus data source adapter for dashboarding hosts."""

from importlib import metadata


__all__ = ["__version__"]


try:
    __version__ = metadata.version("prom-datasource")
except metadata.PackageNotFoundError:  # pragma: no cover - during local dev without install
    __version__ = "0.1.0"
