import os

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("CACHE_PERSIST", "false")
