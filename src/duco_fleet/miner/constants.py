"""Shared constants for the miner module."""

# Microseconds per second, the unit of all throttle arithmetic
MICROS_PER_SECOND = 1_000_000

# Timeout for closing a pool connection after a session ends (seconds)
POOL_DISCONNECT_TIMEOUT = 5.0

# Maximum length of pool text echoed into logs (prevents log bloat from junk responses)
MAX_LOGGED_RESPONSE_LENGTH = 200

# Timeout for supervisors to wind down after a stop request (seconds)
SHUTDOWN_TIMEOUT = 10.0

# Thread name prefix for hash search workers
HASHER_THREAD_PREFIX = "duco-hasher"
