#!/usr/bin/env python3
"""
Model Setup Script - Pre-download and Validate the NSFW Model

This script:
1. Downloads the ONNX NSFW model into the local cache directory
2. Validates it with a dummy inference
3. Reports a summary

Run this during Docker build to avoid download at runtime:
    python scripts/setup_models.py

Environment variables:
    ML_MODEL_CACHE_DIR: Directory to cache models (default: ./.model-cache)
    NSFW_MODEL_URL: Source of the model artifact
"""

import os
import sys
import time
import asyncio
import logging
import argparse
from pathlib import Path

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from content_guard.core.config import settings
from content_guard.core.exceptions import ModerationBaseException
from content_guard.engines.moderation.inference import InferenceEngine
from content_guard.engines.moderation.schemas import TENSOR_LENGTH

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def setup_models(
    cache_dir: str,
    model_url: str,
    force: bool = False,
    validate: bool = True,
) -> bool:
    """Download the NSFW model and optionally validate it.

    Args:
        cache_dir: Directory to cache the model
        model_url: Where to fetch the model from
        force: Re-download even if a cached copy exists
        validate: Run a dummy inference after loading
    """
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("NSFW Model Setup Script")
    logger.info("=" * 60)
    logger.info(f"Cache directory: {cache_path.absolute()}")
    logger.info(f"Model URL: {model_url}")
    logger.info("=" * 60)

    total_start = time.time()

    engine = InferenceEngine(
        cache_dir=cache_path,
        model_url=model_url,
        model_filename=settings.NSFW_MODEL_FILENAME,
        init_timeout=settings.MODEL_INIT_TIMEOUT_SECONDS,
        download_timeout=settings.MODEL_DOWNLOAD_TIMEOUT_SECONDS,
    )

    # =========================================================================
    # Step 1: Download and load
    # =========================================================================
    logger.info("\n[Step 1/3] Downloading and loading model...")

    if force and engine.model_path.exists():
        logger.info(f"Removing cached model: {engine.model_path}")
        engine.model_path.unlink()

    try:
        await engine.ensure_ready()
    except ModerationBaseException as e:
        logger.error(f"❌ Model setup failed: {e.message}")
        return False

    logger.info(f"✅ Model ready: {engine.model_path}")

    # =========================================================================
    # Step 2: Validate
    # =========================================================================
    if validate:
        logger.info("\n[Step 2/3] Validating model...")
        dummy = np.zeros(TENSOR_LENGTH, dtype=np.float32)
        try:
            confidence = await engine.classify(dummy)
        except ModerationBaseException as e:
            logger.error(f"❌ Validation failed: {e.message}")
            return False
        logger.info(f"✅ Dummy inference returned confidence={confidence:.4f}")
    else:
        logger.info("\n[Step 2/3] Skipping validation")

    # =========================================================================
    # Step 3: Summary
    # =========================================================================
    logger.info("\n[Step 3/3] Summary")

    status = engine.status()
    size_mb = engine.model_path.stat().st_size / (1024 * 1024)

    logger.info("=" * 60)
    logger.info("✅ Model setup complete!")
    logger.info("=" * 60)
    logger.info(f"Total time: {time.time() - total_start:.1f}s")
    logger.info(f"Model size: {size_mb:.1f}MB")
    logger.info(f"Load time: {status['load_time_seconds']:.2f}s")
    logger.info("=" * 60)

    return True


def main():
    parser = argparse.ArgumentParser(
        description="Download and validate the NSFW model for the moderation service"
    )
    parser.add_argument(
        "--cache-dir",
        default=os.environ.get("ML_MODEL_CACHE_DIR", str(settings.ML_MODEL_CACHE_DIR)),
        help="Directory to cache models"
    )
    parser.add_argument(
        "--model-url",
        default=settings.NSFW_MODEL_URL,
        help="Model download URL"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-download even if the model is cached"
    )
    parser.add_argument(
        "--no-validate",
        action="store_true",
        help="Skip model validation"
    )

    args = parser.parse_args()

    success = asyncio.run(setup_models(
        cache_dir=args.cache_dir,
        model_url=args.model_url,
        force=args.force,
        validate=not args.no_validate,
    ))

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
