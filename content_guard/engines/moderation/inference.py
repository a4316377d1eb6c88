"""
NSFW Inference Engine - Lazy, Shared Model Initialization

Implements:
- Fetch-once model acquisition into a local cache directory (httpx)
- ONNX Runtime session creation on the CPU execution provider
- At most one initialization in flight; concurrent callers await the same attempt
- Failed initialization is reported to every waiter and retried on the next call
- Thread-safe process-wide singleton

Model: OpenNSFW2-compatible ONNX graph
- Input:  float32 [1, 224, 224, 3], values in [-1, 1]
- Output: [sfw, nsfw] probabilities; the last value is the confidence
"""

import asyncio
import logging
import os
import tempfile
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx
import numpy as np
import onnxruntime as ort

from content_guard.core.exceptions import InferenceError, ModelInitializationError
from content_guard.core.logging import with_logging
from content_guard.core.metrics import (
    record_inference_latency,
    record_model_init_failure,
    record_model_load_time,
)
from content_guard.engines.moderation.schemas import TENSOR_CHANNELS, TENSOR_LENGTH, TENSOR_SIZE

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


# =============================================================================
# Model Acquisition
# =============================================================================

def download_model(url: str, destination: Path, timeout: float = 60.0) -> None:
    """Stream a model artifact to ``destination``.

    Writes to a temporary file in the same directory and renames it into
    place, so a partial download never looks like a cached model.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=destination.parent, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as out:
            with httpx.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    out.write(chunk)
        if os.path.getsize(tmp_name) == 0:
            raise ModelInitializationError(f"Downloaded model from {url} is empty")
        os.replace(tmp_name, destination)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)


def create_onnx_session(model_path: Path) -> ort.InferenceSession:
    options = ort.SessionOptions()
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    return ort.InferenceSession(
        str(model_path),
        sess_options=options,
        providers=["CPUExecutionProvider"],
    )


# =============================================================================
# Inference Engine
# =============================================================================

class InferenceEngine:
    """Owns the NSFW model session and maps tensors to confidence scores.

    Lifecycle: uninitialized -> initializing -> ready, or
    initializing -> failed -> (next call) initializing again.
    The session is treated as read-only once ready, so ``classify`` runs
    concurrently without locking.
    """

    _instance: Optional["InferenceEngine"] = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        cache_dir: Path,
        model_url: str,
        model_filename: str = "nsfw.onnx",
        init_timeout: float = 120.0,
        download_timeout: float = 60.0,
        session_factory: Callable[[Path], Any] = create_onnx_session,
        downloader: Optional[Callable[[str, Path], None]] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.model_url = model_url
        self.model_path = self.cache_dir / model_filename
        self.init_timeout = init_timeout
        self.download_timeout = download_timeout

        self._session_factory = session_factory
        self._downloader = downloader or self._download_with_timeout

        self._state = EngineState.UNINITIALIZED
        self._session: Any = None
        self._input_name: Optional[str] = None
        self._init_task: Optional[asyncio.Task] = None
        # serializes loaders; a timed-out loader thread keeps running
        self._load_lock = threading.Lock()
        self._init_attempts = 0
        self._load_time: Optional[float] = None
        self._last_error: Optional[str] = None

    @classmethod
    def get_instance(cls, settings=None) -> "InferenceEngine":
        """Get the process-wide engine (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    if settings is None:
                        from content_guard.core.config import settings
                    cls._instance = cls(
                        cache_dir=settings.ML_MODEL_CACHE_DIR,
                        model_url=settings.NSFW_MODEL_URL,
                        model_filename=settings.NSFW_MODEL_FILENAME,
                        init_timeout=settings.MODEL_INIT_TIMEOUT_SECONDS,
                        download_timeout=settings.MODEL_DOWNLOAD_TIMEOUT_SECONDS,
                    )
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton instance (for testing)."""
        with cls._instance_lock:
            cls._instance = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == EngineState.READY

    @property
    def init_attempts(self) -> int:
        return self._init_attempts

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "model_path": str(self.model_path),
            "model_cached": self.model_path.exists(),
            "load_time_seconds": self._load_time,
            "init_attempts": self._init_attempts,
            "last_error": self._last_error,
        }

    # =========================================================================
    # Initialization
    # =========================================================================

    async def ensure_ready(self) -> None:
        """Make the model usable, initializing it at most once at a time.

        Raises:
            ModelInitializationError: shared by every caller waiting on a
                failed attempt. The next call starts a fresh attempt.
        """
        if self._state == EngineState.READY:
            return

        task = self._init_task
        if task is not None and task.done():
            # Finished without publishing a result: cancelled, or its event loop is gone
            logger.warning(f"[NSFW] Discarding abandoned initialization attempt ({task!r})")
            self._init_task = None
            self._state = EngineState.UNINITIALIZED

        if self._init_task is None:
            self._init_attempts += 1
            self._state = EngineState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._initialize())

        # shield: one cancelled waiter must not cancel the shared attempt
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        start = time.time()
        logger.info(f"[NSFW] Initializing NSFW model (attempt {self._init_attempts})")

        try:
            session = await asyncio.wait_for(
                asyncio.to_thread(self._load_session),
                timeout=self.init_timeout,
            )
        except asyncio.TimeoutError as e:
            error = ModelInitializationError(
                f"Model initialization timed out after {self.init_timeout:.0f}s"
            )
            self._fail_initialization(error)
            raise error from e
        except asyncio.CancelledError:
            logger.warning("[NSFW] Model initialization was cancelled")
            if self._init_task is asyncio.current_task():
                self._state = EngineState.UNINITIALIZED
                self._init_task = None
            raise
        except ModelInitializationError as e:
            self._fail_initialization(e)
            raise
        except Exception as e:
            error = ModelInitializationError(f"Failed to initialize NSFW model: {e}")
            self._fail_initialization(error)
            raise error from e

        inputs = session.get_inputs()
        self._session = session
        self._input_name = inputs[0].name
        self._load_time = time.time() - start
        self._last_error = None
        self._state = EngineState.READY
        self._init_task = None

        record_model_load_time(self._load_time)
        logger.info(f"[NSFW] NSFW detection service initialized in {self._load_time:.2f}s")

    def _fail_initialization(self, error: ModelInitializationError) -> None:
        self._state = EngineState.FAILED
        self._last_error = error.message
        self._init_task = None
        record_model_init_failure()
        logger.error(f"[NSFW] Model initialization failed: {error.message}")

    @with_logging("model_load")
    def _load_session(self) -> Any:
        """Resolve the cached artifact (fetching it if needed) and open a session."""
        with self._load_lock:
            downloaded = False
            if self.model_path.exists():
                logger.info(f"[NSFW] Using cached model from: {self.model_path}")
            else:
                logger.info(f"[NSFW] Downloading NSFW model from {self.model_url}")
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                try:
                    self._downloader(self.model_url, self.model_path)
                except httpx.HTTPError as e:
                    raise ModelInitializationError(f"Failed to download NSFW model: {e}") from e
                downloaded = True
                logger.info(f"[NSFW] Model cached at: {self.model_path}")

            try:
                session = self._session_factory(self.model_path)
                if not session.get_inputs():
                    raise ModelInitializationError("NSFW model declares no inputs")
            except Exception:
                if downloaded and self.model_path.exists():
                    logger.warning(f"[NSFW] Removing unusable downloaded model: {self.model_path}")
                    self.model_path.unlink()
                raise
            return session

    def _download_with_timeout(self, url: str, destination: Path) -> None:
        download_model(url, destination, timeout=self.download_timeout)

    # =========================================================================
    # Inference
    # =========================================================================

    async def classify(self, tensor: np.ndarray) -> float:
        """Score a preprocessed tensor.

        Returns:
            Confidence in [0, 1] that the image is unsafe

        Raises:
            InferenceError: engine not ready, bad tensor, or runtime failure
        """
        if self._state != EngineState.READY:
            raise InferenceError(f"NSFW model is not ready (state={self._state.value})")
        return await asyncio.to_thread(self._run, tensor)

    def _run(self, tensor: np.ndarray) -> float:
        if tensor.size != TENSOR_LENGTH:
            raise InferenceError(f"Expected tensor of length {TENSOR_LENGTH}, got {tensor.size}")

        batch = np.asarray(tensor, dtype=np.float32).reshape(1, TENSOR_SIZE, TENSOR_SIZE, TENSOR_CHANNELS)

        start = time.time()
        try:
            outputs = self._session.run(None, {self._input_name: batch})
        except Exception as e:
            raise InferenceError(f"ONNX Runtime error: {e}") from e
        record_inference_latency(time.time() - start)

        if not outputs:
            raise InferenceError("Inference returned no outputs")
        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size == 0:
            raise InferenceError("Inference returned an empty output")

        confidence = float(scores[-1])
        if not np.isfinite(confidence):
            raise InferenceError(f"Inference returned a non-finite score: {confidence}")
        return min(max(confidence, 0.0), 1.0)
