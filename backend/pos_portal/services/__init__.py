"""External collaborators: retailer registry, push API client, receipt store."""
