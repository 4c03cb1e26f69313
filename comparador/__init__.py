"""Price comparison core: basket totals across chains and price series dashboards."""

__version__ = "0.1.0"
