import os

# config.py validates the environment at import time
os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "chat_test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("MINIO_USERNAME", "minio")
os.environ.setdefault("MINIO_PASSWORD", "minio-password")
os.environ.setdefault("MINIO_SERVER", "localhost:9000")
os.environ.setdefault("MINIO_BUCKET", "chat-test")
os.environ.setdefault("PUBLIC_BASE_URL", "http://chat.local")
