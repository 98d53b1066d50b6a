from dotenv import load_dotenv
import os

class Config:
    def __init__(self):
        load_dotenv()
        # Vapi chat API
        self.vapi_secret_key = os.getenv("VAPI_SECRET_KEY")
        self.vapi_assistant_id = os.getenv("VAPI_ASSISTANT_ID")
        self.vapi_base_url = os.getenv("VAPI_BASE_URL", "https://api.vapi.ai").rstrip("/")
        self.chat_timeout_seconds = float(os.getenv("CHAT_TIMEOUT_SECONDS", "30"))

        # OpenAI text-to-speech
        self.openai_api_key = os.getenv("OPENAI_API_KEY")
        self.tts_model = os.getenv("TTS_MODEL", "tts-1")
        self.tts_voice = os.getenv("TTS_VOICE", "alloy")
        self.tts_format = os.getenv("TTS_FORMAT", "mp3")
        self.tts_timeout_seconds = float(os.getenv("TTS_TIMEOUT_SECONDS", "30"))

        # Session store bounds, 0 disables a bound
        self.session_ttl_seconds = float(os.getenv("SESSION_TTL_SECONDS", "3600"))
        self.max_sessions = int(os.getenv("MAX_SESSIONS", "1000"))
        self.max_history_messages = int(os.getenv("MAX_HISTORY_MESSAGES", "100"))

        # Server
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "3000"))
        self.cors_allow_origins = [
            origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()
        ]
        self.app_env = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "production"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"
