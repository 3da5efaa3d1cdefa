from prometheus_client import Counter


reminders_scheduled_total = Counter(
    "npd_reminders_scheduled_total",
    "Total reminders scheduled via API",
)

reminders_cancelled_total = Counter(
    "npd_reminders_cancelled_total",
    "Total reminders deleted by cancelReminder",
)

sweep_runs_total = Counter(
    "npd_reminder_sweep_runs_total",
    "Total reminder sweep runs",
)

reminders_dispatch_success_total = Counter(
    "npd_reminders_dispatch_success_total",
    "Total successful push dispatches",
)

reminders_dispatch_failed_total = Counter(
    "npd_reminders_dispatch_failed_total",
    "Total failed push dispatches",
)

devices_evicted_total = Counter(
    "npd_devices_evicted_total",
    "Total device records removed after a token-invalid provider error",
)
