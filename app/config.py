import os
from dotenv import load_dotenv

load_dotenv()

# API Configuration
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
LLM_MAX_TOKENS = int(os.getenv('LLM_MAX_TOKENS', '1000'))
GOOGLE_TTS_API_KEY = os.getenv('GOOGLE_TTS_API_KEY') or os.getenv('GOOGLE_API_KEY')
PROVIDER_TIMEOUT_SECONDS = float(os.getenv('PROVIDER_TIMEOUT_SECONDS', '30'))

# Database Configuration
MONGODB_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017')
MONGODB_DATABASE = os.getenv('MONGODB_DATABASE', 'voiceagent_db')

# App Configuration
PORT = int(os.getenv('PORT', '3001'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# CORS Configuration
CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')

# Auth Configuration
JWT_SECRET = os.getenv('JWT_SECRET', 'your-secret-key-change-in-production')
JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
JWT_EXPIRE_DAYS = int(os.getenv('JWT_EXPIRE_DAYS', '30'))
ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', 'admin@voiceagent.com')
ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD')

# Quota Configuration
DEFAULT_MINUTES_LIMIT = float(os.getenv('DEFAULT_MINUTES_LIMIT', '120'))  # per month, students
ADMIN_MINUTES_LIMIT = 999999
WORDS_PER_MINUTE = int(os.getenv('WORDS_PER_MINUTE', '150'))               # spoken-length estimate

# Premium TTS Configuration
TTS_DAILY_LIMIT_KEY = 'tts_daily_limit'
TTS_DAILY_LIMIT_DEFAULT = int(os.getenv('TTS_DAILY_LIMIT_DEFAULT', '15'))   # when api_configs has no value
TTS_MAX_CHARS = int(os.getenv('TTS_MAX_CHARS', '5000'))
