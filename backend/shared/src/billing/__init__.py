"""Shared domain package for the clinic billing webhooks service."""
