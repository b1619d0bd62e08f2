# Back-office client test suite
#
# Everything runs offline: the REST backend is faked with httpx.MockTransport,
# shared storage is in-memory SQLite, and expiry timers are recorded instead of
# started.
#
# Run with: python -m pytest [-m smoke]
