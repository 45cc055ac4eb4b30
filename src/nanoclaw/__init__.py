"""nanoclaw: per-group coding-agent runner with a file-based IPC mailbox."""
