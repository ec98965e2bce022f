"""
Backend configuration file
"""
import os


# Flask配置
class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'your-secret-key-change-this')
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50MB, worksheets carry base64 images

    # AI服务配置 (Edit Proposer)
    GOOGLE_API_KEY = os.getenv('GOOGLE_API_KEY', '')
    GOOGLE_API_BASE = os.getenv('GOOGLE_API_BASE', '')

    # AI Provider 格式配置: "gemini" (Google GenAI SDK), "openai" (OpenAI SDK) 或 "vertex"
    AI_PROVIDER_FORMAT = os.getenv('AI_PROVIDER_FORMAT', 'gemini')

    # GenAI (Gemini) 格式专用配置
    GENAI_TIMEOUT = float(os.getenv('GENAI_TIMEOUT', '120.0'))  # Gemini 超时时间（秒）
    GENAI_MAX_RETRIES = int(os.getenv('GENAI_MAX_RETRIES', '2'))  # Gemini 最大重试次数（应用层实现）

    # OpenAI 格式专用配置（当 AI_PROVIDER_FORMAT=openai 时使用）
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
    OPENAI_API_BASE = os.getenv('OPENAI_API_BASE', 'https://api.openai.com/v1')
    OPENAI_TIMEOUT = float(os.getenv('OPENAI_TIMEOUT', '120.0'))
    OPENAI_MAX_RETRIES = int(os.getenv('OPENAI_MAX_RETRIES', '2'))

    # Vertex AI
    VERTEX_PROJECT_ID = os.getenv('VERTEX_PROJECT_ID', '')
    VERTEX_LOCATION = os.getenv('VERTEX_LOCATION', 'us-central1')

    # 编辑模型配置
    TEXT_MODEL = os.getenv('TEXT_MODEL', 'gemini-2.5-flash')
    EDIT_TEMPERATURE = float(os.getenv('EDIT_TEMPERATURE', '0.7'))

    # 图片生成配置 (Image Synthesizer)
    # 可选值: "together" (FLUX), "openai", "gemini"
    IMAGE_PROVIDER_FORMAT = os.getenv('IMAGE_PROVIDER_FORMAT', 'together')
    IMAGE_MODEL = os.getenv('IMAGE_MODEL', 'black-forest-labs/FLUX.1-schnell')
    TOGETHER_API_KEY = os.getenv('TOGETHER_API_KEY', '')
    TOGETHER_API_BASE = os.getenv('TOGETHER_API_BASE', 'https://api.together.xyz/v1')
    IMAGE_TIMEOUT = float(os.getenv('IMAGE_TIMEOUT', '90.0'))

    # 重试策略: 第 n 次失败后等待 n * IMAGE_RETRY_DELAY 秒
    IMAGE_MAX_ATTEMPTS = int(os.getenv('IMAGE_MAX_ATTEMPTS', '3'))
    IMAGE_RETRY_DELAY = float(os.getenv('IMAGE_RETRY_DELAY', '1.0'))

    # FLUX 只接受 16 的倍数，范围 256 - 2048
    IMAGE_SIZE_STEP = int(os.getenv('IMAGE_SIZE_STEP', '16'))
    IMAGE_MIN_SIZE = int(os.getenv('IMAGE_MIN_SIZE', '256'))
    IMAGE_MAX_SIZE = int(os.getenv('IMAGE_MAX_SIZE', '2048'))

    # 缩略图配置
    THUMBNAIL_WIDTH = int(os.getenv('THUMBNAIL_WIDTH', '320'))
    THUMBNAIL_CANVAS_WIDTH = int(os.getenv('THUMBNAIL_CANVAS_WIDTH', '794'))  # A4 @ 96dpi
    THUMBNAIL_CANVAS_HEIGHT = int(os.getenv('THUMBNAIL_CANVAS_HEIGHT', '1123'))
    THUMBNAIL_QUALITY = int(os.getenv('THUMBNAIL_QUALITY', '85'))
    MAX_THUMBNAIL_WORKERS = int(os.getenv('MAX_THUMBNAIL_WORKERS', '8'))

    # 日志配置
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # CORS配置
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    IMAGE_RETRY_DELAY = 0.0


# 根据环境变量选择配置
config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on environment"""
    env = os.getenv('FLASK_ENV', 'development')
    return config_map.get(env, DevelopmentConfig)
