"""
Audio module - capture, playback, and ownership of voice-message audio.
"""

from .playback import BrowserPlayerFactory, PlaybackController, SoundDevicePlayerFactory
from .processor import AudioProcessor
from .recorder import RecorderController, RecorderState, SoundDeviceCapture
from .resources import AudioResourceRegistry

__all__ = [
    "AudioProcessor",
    "AudioResourceRegistry",
    "BrowserPlayerFactory",
    "PlaybackController",
    "RecorderController",
    "RecorderState",
    "SoundDeviceCapture",
    "SoundDevicePlayerFactory",
]
