"""Audio subpackage: capture, frame channel, VAD and playback."""

from hark.audio.channel import FrameChannel
from hark.audio.playback import AudioSink, PlaybackMonitor, PlaybackState
from hark.audio.source import AudioSource
from hark.audio.vad import VadConfig, VoiceActivityDetector

__all__ = [
    "AudioSink",
    "AudioSource",
    "FrameChannel",
    "PlaybackMonitor",
    "PlaybackState",
    "VadConfig",
    "VoiceActivityDetector",
]
