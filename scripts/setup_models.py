#!/usr/bin/env python3
"""
Model Setup Script - Pre-download the image models

This script:
1. Builds the collaborators selected by the current settings
2. Runs a tiny image through the upscaler and the background remover, which
   downloads the model weights on first use
3. Reports loading times

Run this during Docker build to avoid download at runtime:
    python scripts/setup_models.py

Environment variables:
    UPSCALE_BACKEND, REALESRGAN_MODEL_PATH, REMBG_MODEL (see pixelpipe.core.config)
"""

import io
import sys
import time
import logging
import argparse
import tempfile
from pathlib import Path

from PIL import Image

from pixelpipe.core.config import Settings
from pixelpipe.engines import build_collaborators

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _sample_png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), (120, 180, 90)).save(buffer, format="PNG")
    return buffer.getvalue()


def setup_models(skip_upscaler: bool = False, skip_rembg: bool = False) -> bool:
    """Load every configured model once.

    Args:
        skip_upscaler: Don't touch the upscaler
        skip_rembg: Don't touch the background remover
    """
    settings = Settings()
    collaborators = build_collaborators(settings)

    logger.info("=" * 60)
    logger.info("Model Setup Script")
    logger.info("=" * 60)
    logger.info(f"Upscale backend: {settings.UPSCALE_BACKEND}")
    logger.info(f"Rembg model: {settings.REMBG_MODEL}")

    total_start = time.time()
    sample = _sample_png()

    try:
        if not skip_upscaler:
            start = time.time()
            with tempfile.TemporaryDirectory() as workdir:
                source = Path(workdir) / "sample.png"
                source.write_bytes(sample)
                collaborators.upscaler.upscale(source, Path(workdir) / "sample_upscaled.png")
            logger.info(f"Upscaler ready in {time.time() - start:.1f}s")

        if not skip_rembg:
            start = time.time()
            collaborators.background_remover.remove(sample)
            logger.info(f"Background remover ready in {time.time() - start:.1f}s")
    except Exception as e:
        logger.error(f"Model setup failed: {e}")
        return False

    logger.info(f"All models ready in {time.time() - total_start:.1f}s")
    logger.info("=" * 60)
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Download and warm up the image models"
    )
    parser.add_argument(
        "--skip-upscaler",
        action="store_true",
        help="Skip the upscaler model"
    )
    parser.add_argument(
        "--skip-rembg",
        action="store_true",
        help="Skip the background removal model"
    )

    args = parser.parse_args()

    success = setup_models(skip_upscaler=args.skip_upscaler, skip_rembg=args.skip_rembg)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
