"""Liveness sweeps: inactivity reaping and stale-connection scrubbing."""

from randvoice.liveness.observer import InactivityReaper, LivenessMonitor, StatsSweep

__all__ = ["InactivityReaper", "LivenessMonitor", "StatsSweep"]
