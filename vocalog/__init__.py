"""
Vocalog - local speech-session transcription.

Turns WAV recordings into persisted, editable transcripts: model provisioning
→ audio decoding and resampling → single-flight whisper transcription →
durable session store → portable backup bundles.
"""

__version__ = "0.1.0"
