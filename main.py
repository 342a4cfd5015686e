"""
main.py
========
Central entry point for the Scribe service.

Run with:
    uvicorn main:app --reload
"""

import logging

from dotenv import load_dotenv

load_dotenv()  # Load .env before any module reads env vars

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Model download and HTTP transport chatter stays out of the pipeline log.
for _noisy_logger_name in (
    "transformers",
    "huggingface_hub",
    "filelock",
    "urllib3",
    "httpx",
    "httpcore",
    "pydub.converter",
):
    logging.getLogger(_noisy_logger_name).setLevel(logging.WARNING)

from src.api.upload import create_app  # noqa: E402
from src.config import Settings  # noqa: E402

settings = Settings.from_env()
app = create_app(settings)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=True)
