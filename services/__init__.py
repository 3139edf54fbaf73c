"""
Services package for the Cognitive Load Engine.

This package contains the stateful, hardware-facing services:
- Resource arbiter: exclusive camera/microphone/accelerator leases and the shared audio context
- Vision adapter: MediaPipe face landmarker with a pointer-heuristic fallback
- Voice adapter: vocal energy and speech rate (sounddevice + Vosk)
- Behavioral adapter: pointer, touch and click heuristics
- Sample board and feature aggregator: latest samples and per-tick features
"""
