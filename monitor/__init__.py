"""Background services: alert monitor host, retention sweeper, metric sources."""
