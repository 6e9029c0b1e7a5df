from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class TranslationConfig:
    """Configuration for the text completion backend and batch translation."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    alternate_model: Optional[str] = None  # lighter model used by the second recovery step
    temperature: float = 0.1
    timeout: float = 30.0
    api_base: Optional[str] = None
    api_key_env: Optional[str] = "OPENAI_API_KEY"
    source_language: str = "English"
    target_language: str = "Brazilian Portuguese"
    chunk_size: int = 20
    batch_size: int = 5
    max_batch_chars: int = 300
    recovery_wait_seconds: float = 8.0
    alternate_wait_seconds: float = 5.0
    cooldown_every_chunks: int = 2
    cooldown_seconds: float = 2.0


@dataclass
class FidelityConfig:
    """Thresholds for untranslated / hallucinated output detection."""

    similarity_threshold: float = 0.9
    function_word_ratio: float = 0.4
    min_word_length: int = 3
    max_untranslated_ratio: float = 0.3
    max_length_ratio: float = 3.0
    min_hallucination_chars: int = 20  # short cues may legitimately triple in length


@dataclass
class FittingConfig:
    """Configuration for fitting translated text into its cue window."""

    speaking_rate: float = 4.5  # words per second in the target language
    too_long_ratio: float = 0.8
    too_short_ratio: float = 0.2
    shorten_margin: float = 0.8
    extend_margin: float = 0.9
    min_reduction: float = 0.15


@dataclass
class SilenceConfig:
    """Configuration for waveform silence detection."""

    threshold_db: float = -40.0
    min_duration: float = 0.05
    merge_tolerance: float = 0.1
    timeout: float = 120.0
    ffmpeg_bin: str = "ffmpeg"


@dataclass
class AlignmentConfig:
    """Configuration for audio duration alignment and sync validation."""

    min_speed: float = 0.75
    max_speed: float = 1.35
    sample_rate: int = 48000
    channels: int = 2
    sample_width: int = 3  # 24-bit PCM
    codec: str = "pcm_s24le"
    timeout: float = 120.0
    ffmpeg_bin: str = "ffmpeg"
    compressible_weight: float = 0.65
    min_long_pause_ms: int = 1000
    sync_tolerance: float = 0.05


@dataclass
class PipelineConfig:
    """Top level configuration for the dubbing agent."""

    translation: TranslationConfig = field(default_factory=TranslationConfig)
    fidelity: FidelityConfig = field(default_factory=FidelityConfig)
    fitting: FittingConfig = field(default_factory=FittingConfig)
    silence: SilenceConfig = field(default_factory=SilenceConfig)
    alignment: AlignmentConfig = field(default_factory=AlignmentConfig)
    output_root: Path = Path("artifacts")
    overwrite: bool = False
    resume: bool = True
    fit_timing: bool = True
    export_srt: bool = True
