"""Queue names and consumer group."""

LIFECYCLE_QUEUE = "lifecycle:queue"
PROVISION_QUEUE = "provision:queue"

WORKER_GROUP = "stackhand-workers"

ALL_QUEUES = [LIFECYCLE_QUEUE, PROVISION_QUEUE]
