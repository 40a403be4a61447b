"""REST API for clinic billing webhooks."""
