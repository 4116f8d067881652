"""Sora core package.

Server side: the reply pipeline (enrichment, prompt composition, model
streaming) and its HTTP surface. Client side (``sora_core.client``): the
chat session controller, per-locale conversation store, transcription and
speech output adapters that a front end drives.
"""

__version__ = "0.1.0"
