"""Pipe transport constants."""

DEFAULT_PIPE_DIR = "/run/mpa"
DATA_FIFO_NAME = "data"

# Maximum bytes read from a pipe per callback
PIPE_READ_BUF_SIZE = 4096

# Bounded select timeout so reader threads observe shutdown promptly
READER_POLL_SECONDS = 0.1

# Wait between attempts to open a pipe that does not exist yet
READER_RETRY_SECONDS = 1.0
