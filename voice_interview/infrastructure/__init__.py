"""Infrastructure components for the voice interview system.

This module contains the concrete engines behind the interview service
contracts: Google speech, Vertex AI dialogue, PyAudio output and persistence.
Submodules are imported on demand so the core stays usable without audio
hardware or cloud clients installed.
"""
