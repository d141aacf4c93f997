"""IP address management: range arithmetic, allocation, resource types and IPAM configuration."""

__version__ = "0.1.0"

__all__ = ["allocate", "api", "config", "iphelpers", "log"]