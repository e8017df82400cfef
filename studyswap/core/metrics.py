from prometheus_client import Counter


# Barter lifecycle metrics, exposed at /metrics
barter_transitions_total = Counter(
    "barter_transitions_total", "Barter lifecycle transitions written to the database", ["transition"]
)

barter_notifications_failed_total = Counter(
    "barter_notifications_failed_total", "Barter notifications that could not be handed to the sink"
)
