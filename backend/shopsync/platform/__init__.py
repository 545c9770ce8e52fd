"""Platform utilities shared by the sync pipeline."""
