"""Auto-instrumentation for third-party clients."""
