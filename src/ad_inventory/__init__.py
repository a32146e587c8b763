"""Read-only Active Directory infrastructure inventory and health report."""

__version__ = "0.1.0"
