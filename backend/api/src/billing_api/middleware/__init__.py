"""HTTP middleware for the billing API."""
