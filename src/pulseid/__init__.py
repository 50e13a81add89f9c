"""
PulseID - Multi-modal Biometric Identity Engine

Turns a fingertip pulse waveform, device motion and touchscreen behaviour
into a durable per-device identity vector, and decides at four strictness
levels whether a live sample belongs to the enrolled person.

The host application talks to :class:`pulseid.identity_manager.IdentityManager`;
the modality engines, vector math and storage contract sit underneath it.
"""

__version__ = "1.0.0"
__author__ = "PulseID Team"
