"""
Configuration management for PowerBrief
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str = 'true') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration"""

    # Supabase
    SUPABASE_URL: str = os.getenv('SUPABASE_URL', '')
    SUPABASE_SERVICE_KEY: str = os.getenv('SUPABASE_SERVICE_KEY', '')

    # AI providers
    GEMINI_API_KEY: str = os.getenv('GEMINI_API_KEY') or os.getenv('GOOGLE_API_KEY', '')
    ANTHROPIC_API_KEY: str = os.getenv('ANTHROPIC_API_KEY', '')

    # API surface
    POWERBRIEF_API_KEY: str = os.getenv('POWERBRIEF_API_KEY', '')
    CORS_ORIGINS: str = os.getenv('CORS_ORIGINS', '*')
    GENERATION_RATE_LIMIT: str = os.getenv('GENERATION_RATE_LIMIT', '10/minute')
    ANALYSIS_RATE_LIMIT: str = os.getenv('ANALYSIS_RATE_LIMIT', '30/minute')

    # Claude generation parameters
    CLAUDE_TEMPERATURE: float = 0.7
    CLAUDE_MAX_TOKENS: int = int(os.getenv('CLAUDE_MAX_TOKENS', '4096'))

    # Gemini generation parameters (per call site)
    BRAINSTORM_TEMPERATURE: float = 0.7
    RUN_PROMPT_TEMPERATURE: float = 0.7
    RUN_PROMPT_TOP_K: int = 40
    RUN_PROMPT_TOP_P: float = 0.95
    RUN_PROMPT_MAX_OUTPUT_TOKENS: int = 8192
    AD_ANALYSIS_TEMPERATURE: float = 0.0
    AD_ANALYSIS_TOP_P: float = 0.0
    MEDIA_GENERATION_TEMPERATURE: float = 0.4

    # Media fetch
    MEDIA_FETCH_TIMEOUT: float = float(os.getenv('MEDIA_FETCH_TIMEOUT', '60'))

    # Diagnostics: how much raw model text is echoed back on parse failures
    RAW_RESPONSE_PREVIEW_CHARS: int = int(os.getenv('RAW_RESPONSE_PREVIEW_CHARS', '500'))

    # Conditional writes on onesheet.updated_at
    ONESHEET_OPTIMISTIC_LOCKING: bool = _env_flag('ONESHEET_OPTIMISTIC_LOCKING')

    @classmethod
    def validate(cls) -> bool:
        """Validate required configuration"""
        required = {
            'SUPABASE_URL': cls.SUPABASE_URL,
            'SUPABASE_SERVICE_KEY': cls.SUPABASE_SERVICE_KEY,
        }

        missing = [k for k, v in required.items() if not v]

        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        return True

    @classmethod
    def get(cls, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get configuration value"""
        return getattr(cls, key, default)

    # ========================================================================
    # Model Configuration
    # ========================================================================

    BRAINSTORM_GEMINI_MODEL = "gemini-2.5-flash"
    CLAUDE_MODEL = "claude-sonnet-4-20250514"
    RUN_PROMPT_MODEL = "gemini-2.5-pro"
    AD_ANALYSIS_MODEL = "gemini-2.5-flash"
    MEDIA_MODEL = "gemini-2.5-pro"
    DEFAULT_MODEL = BRAINSTORM_GEMINI_MODEL

    @classmethod
    def get_model(cls, key: str) -> str:
        """
        Get the configured LLM model for a pipeline call site.

        Resolution Order:
        1. Environment Variable: {KEY}_MODEL (e.g. RUN_PROMPT_MODEL)
        2. Default mapping in this method
        3. Config.DEFAULT_MODEL

        Args:
            key: call site name (e.g., 'brainstorm', 'claude', 'run_prompt',
                 'ad_analysis', 'media'); keys are case-insensitive.

        Returns:
            Model identifier (e.g., 'gemini-2.5-pro', 'claude-sonnet-...')
        """
        key_upper = key.upper()

        env_model = os.getenv(f"{key_upper}_MODEL")
        if env_model:
            return env_model

        mappings = {
            "BRAINSTORM": cls.BRAINSTORM_GEMINI_MODEL,
            "CLAUDE": cls.CLAUDE_MODEL,
            "RUN_PROMPT": cls.RUN_PROMPT_MODEL,
            "AD_ANALYSIS": cls.AD_ANALYSIS_MODEL,
            "MEDIA": cls.MEDIA_MODEL,
        }

        return mappings.get(key_upper, cls.DEFAULT_MODEL)
