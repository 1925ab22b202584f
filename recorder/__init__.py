"""DevTools Recorder pipeline: selector scoring, replay script generation and override review."""
