DEFAULT_CONFIG = {
    "headless": True,
    "viewport": {"width": 1280, "height": 720},
    "language": "en-US",
    "timeout_ms": 30000,
    "tracing": True,
    "trace_dir": "./traces",
}
