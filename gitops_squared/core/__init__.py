"""Resource versioning and catalog aggregation."""
