"""Server-side reminder service (HTTP API, periodic sweep, FCM dispatcher).

Intended to run as its own service: the API process accepts device
registrations and reminders, and a Celery beat (or the in-process
``SweepWorker``) drives the periodic sweep that pushes due reminders.
"""
