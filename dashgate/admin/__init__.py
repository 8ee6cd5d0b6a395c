"""Administrator endpoints for the invitation workflow."""
