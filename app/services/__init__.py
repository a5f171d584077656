"""Services package: vendor drivers, device sync, automations, ingestion and retention."""
