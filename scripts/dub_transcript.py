import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

from dubbing_agent import DubbingPipeline, PipelineConfig
from dubbing_agent.config import AlignmentConfig, FittingConfig, TranslationConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Translate a timestamped transcript and align dubbed audio to it.")
    parser.add_argument("transcript", type=Path, help="Path to the source transcript (.tsv or .vtt).")
    parser.add_argument("--run-name", type=str, help="Name for this run; reuse it to resume an interrupted run.")
    parser.add_argument("--output-dir", type=Path, default=Path("artifacts"), help="Directory to store generated artifacts.")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite previous runs with the same name.")
    parser.add_argument("--no-resume", action="store_true", help="Ignore any checkpoint left by a previous run.")
    parser.add_argument("--audio", type=Path, help="Candidate dubbed audio track to align (optional).")
    parser.add_argument("--clips-dir", type=Path, help="Directory with per-segment clips segment_0001.wav, ... (optional).")
    parser.add_argument("--translation-provider", type=str, choices=["openai", "deepseek", "ollama"], default="openai", help="Completion backend to use.")
    parser.add_argument("--translation-model", type=str, default="gpt-4o-mini", help="Model name for the completion backend.")
    parser.add_argument("--alternate-model", type=str, help="Lighter model used when the primary model keeps failing.")
    parser.add_argument("--translation-api-base", type=str, help="Custom base URL for the completion API (optional).")
    parser.add_argument("--translation-api-key-env", type=str, help="Environment variable containing the API key.")
    parser.add_argument("--source-language", type=str, default="English", help="Language of the transcript.")
    parser.add_argument("--target-language", type=str, default="Brazilian Portuguese", help="Language to translate into.")
    parser.add_argument("--temperature", type=float, default=0.1, help="Temperature for the completion model.")
    parser.add_argument("--timeout", type=float, default=30.0, help="Timeout in seconds for each completion call.")
    parser.add_argument("--speaking-rate", type=float, default=4.5, help="Target-language words per second.")
    parser.add_argument("--too-long-ratio", type=float, default=0.8, help="Speaking ratio above which text is shortened.")
    parser.add_argument("--too-short-ratio", type=float, default=0.2, help="Speaking ratio below which text is extended.")
    parser.add_argument("--no-fit", action="store_true", help="Skip fitting translated text to cue timing.")
    parser.add_argument("--no-srt", action="store_true", help="Do not export bilingual SRT subtitles.")
    parser.add_argument("--ffmpeg", type=str, default="ffmpeg", help="ffmpeg executable used for audio processing.")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR).")
    return parser.parse_args()


def build_config(args: argparse.Namespace) -> PipelineConfig:
    translation_model = args.translation_model
    if args.translation_provider == "deepseek" and translation_model == "gpt-4o-mini":
        translation_model = "deepseek-chat"
    translation_api_key_env = args.translation_api_key_env
    if not translation_api_key_env and args.translation_provider != "ollama":
        translation_api_key_env = "OPENAI_API_KEY" if args.translation_provider == "openai" else "DEEPSEEK_API_KEY"

    translation = TranslationConfig(
        provider=args.translation_provider,
        model=translation_model,
        alternate_model=args.alternate_model,
        temperature=args.temperature,
        timeout=args.timeout,
        api_base=args.translation_api_base,
        api_key_env=translation_api_key_env,
        source_language=args.source_language,
        target_language=args.target_language,
    )
    fitting = FittingConfig(
        speaking_rate=args.speaking_rate,
        too_long_ratio=args.too_long_ratio,
        too_short_ratio=args.too_short_ratio,
    )
    alignment = AlignmentConfig(ffmpeg_bin=args.ffmpeg)

    config = PipelineConfig(
        translation=translation,
        fitting=fitting,
        alignment=alignment,
        output_root=args.output_dir,
        overwrite=args.overwrite,
        resume=not args.no_resume,
        fit_timing=not args.no_fit,
        export_srt=not args.no_srt,
    )
    config.silence.ffmpeg_bin = args.ffmpeg
    return config


def main() -> None:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = build_config(args)
    pipeline = DubbingPipeline(config=config)

    artifacts = pipeline.run(
        transcript_path=args.transcript,
        run_name=args.run_name,
        audio_path=args.audio,
        clips_dir=args.clips_dir,
    )

    logging.info("Translated transcript: %s", artifacts.transcript_path)
    logging.info("Bilingual subtitles: %s", artifacts.subtitles_path)
    logging.info("Transcript metadata: %s", artifacts.transcript_json)
    if artifacts.aligned_audio_path:
        logging.info("Aligned audio track: %s", artifacts.aligned_audio_path)
    if artifacts.sync_report:
        logging.info("Sync report: %s", artifacts.sync_report)


if __name__ == "__main__":
    main()
