"""Push application source to a remote host and have it rebuilt and restarted."""

VERSION = "0.1"

# Set on every server response; the client refuses to talk to anything else.
VERSION_HEADER = "X-DevPush"
