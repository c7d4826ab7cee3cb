import os

from dotenv import load_dotenv

# Pick up a local .env before reading the environment
load_dotenv()


class Settings:
    PROJECT_NAME: str = 'ExpenseSync API'
    PROJECT_VERSION: str = '1.0.0'

    MONGODB_URI: str = os.getenv('MONGODB_URI', 'mongodb://localhost:27017')
    MONGODB_DB: str = os.getenv('MONGODB_DB', 'expense_tracker')

    JWT_SECRET: str = os.getenv('JWT_SECRET', 'your-secret-key')
    JWT_ALGORITHM: str = 'HS256'
    TOKEN_EXPIRE_DAYS: int = int(os.getenv('TOKEN_EXPIRE_DAYS', '180'))
    RESET_TOKEN_EXPIRE_HOURS: int = 1

    HOST: str = os.getenv('HOST', '0.0.0.0')
    PORT: int = int(os.getenv('PORT', '5000'))


settings = Settings()
