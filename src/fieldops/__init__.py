"""Field-service document workflow: estimates, quotes, work orders and invoices."""

__version__ = "0.1.0"
