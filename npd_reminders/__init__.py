"""Reminder scheduling and delivery engine.

Server side (``npd_reminders.reminders``) sweeps due reminders and pushes them
through FCM. Client side (``npd_reminders.client``) schedules on-device
notifications and falls back to an in-app poller when no native notification
subsystem is present.
"""

__version__ = "0.1.0"
