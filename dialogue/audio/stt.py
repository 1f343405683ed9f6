import io
import logging
from functools import lru_cache

import numpy as np
import soundfile as sf

from app.config import WHISPER_MODEL
from app.errors import ValidationError

logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


@lru_cache(maxsize=1)
def get_whisper_model():
    """Load the Whisper model once, on first use."""
    import whisper

    logger.info(f"Loading Whisper model '{WHISPER_MODEL}'")
    return whisper.load_model(WHISPER_MODEL)


def load_audio(data: bytes) -> np.ndarray:
    """Decode an uploaded audio file into mono float32 samples at 16kHz."""
    try:
        audio, sr = sf.read(io.BytesIO(data))
    except RuntimeError as e:
        raise ValidationError(f"Unreadable audio upload: {e}") from e

    # Down-mix stereo
    if audio.ndim > 1:
        audio = audio.mean(axis=1)

    if sr != WHISPER_SAMPLE_RATE:
        import librosa
        audio = librosa.resample(audio, orig_sr=sr, target_sr=WHISPER_SAMPLE_RATE)

    # Convert to float32 (important for Whisper stability)
    if audio.dtype != np.float32:
        audio = audio.astype(np.float32)
    return audio


def speech_to_text(data: bytes) -> str:
    audio = load_audio(data)
    result = get_whisper_model().transcribe(audio)
    text = result["text"].strip()
    if not text:
        raise ValidationError("No speech detected in the audio upload")
    return text
