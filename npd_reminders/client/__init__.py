"""Client-resident reminder delivery: local scheduler, delivery channels and web fallback poller."""
