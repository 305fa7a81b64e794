"""Built-in defaults for the operator process."""

from __future__ import annotations

DEFAULT_BIND_ADDRESS = "0.0.0.0:60000"

# Serving certificate mounted from the operator's secret. Not overridable.
TLS_CERT_FILE = "/etc/secrets/tls.crt"
TLS_KEY_FILE = "/etc/secrets/tls.key"

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_WATCH_INTERVAL_SECONDS = 1.0
