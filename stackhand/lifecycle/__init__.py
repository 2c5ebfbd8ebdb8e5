"""Resource lifecycle: statuses, per-kind adapters, jobs and requests."""
