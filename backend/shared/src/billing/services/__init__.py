"""Service layer for the invoice webhook pipeline."""
