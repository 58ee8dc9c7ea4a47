"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # LLM / generative API keys
    openai_api_key: str = ""
    gemini_api_key: str = ""
    elevenlabs_api_key: str = ""

    # ElevenLabs voice (default: Rachel)
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    elevenlabs_model_id: str = "eleven_multilingual_v2"

    # Model configuration
    plan_model: str = "gpt-4o"
    image_model: str = "gemini-2.5-flash-image-preview"
    video_model: str = "veo-2.0-generate-001"

    # Video job polling
    video_poll_interval_sec: float = 10.0

    # Export
    end_card_duration_sec: float = 3.0
    video_fps: int = 30
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    export_extension: str = "mp4"
    encoder_preset: str = "ultrafast"
    encoder_threads: int = 2

    # Fonts. A name is looked up in the system font dirs; empty or unresolvable
    # falls back to Pillow's built-in scalable (regular) font.
    font_path: str = ""
    bold_font_path: str = "DejaVuSans-Bold.ttf"

    # Output
    output_base_dir: str = "./output"

    # API
    allowed_origins: str = ""


settings = Settings()
