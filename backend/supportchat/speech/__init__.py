"""Speech capture: microphone recording, level metering and the capture session."""
