"""HTTP transport, SSE framing and per-request cancellation."""
