"""FileBed backend: chunked uploads committed to R2 or Telegram."""
