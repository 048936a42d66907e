"""Environment setup, output suppression, and logging for hark.

setup_environment() must be called before importing transformers or
onnxruntime so that their advisory warnings and thread pools are configured
for a small always-on device.
"""

import contextlib
import io
import logging
import os
import warnings
from collections.abc import Generator

LOGGER = logging.getLogger("hark")


def setup_environment() -> None:
    """Configure warning filters and env vars before library imports."""
    warnings.filterwarnings("ignore", category=UserWarning)
    warnings.filterwarnings("ignore", category=FutureWarning)

    os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
    os.environ["TRANSFORMERS_NO_ADVISORY_WARNINGS"] = "1"
    os.environ["TRANSFORMERS_VERBOSITY"] = "error"
    os.environ["HF_HUB_OFFLINE"] = "1"


def quiet_libraries() -> None:
    """Lower the log level of chatty third-party loggers."""
    for name in ("transformers", "onnxruntime", "numba", "piper"):
        logging.getLogger(name).setLevel(logging.WARNING)


@contextlib.contextmanager
def suppress_output() -> Generator[None, None, None]:
    """Hide noisy native-library prints during model loading.

    Redirects fd-level stderr and Python-level stdout/stderr to devnull
    so that Kaldi and ONNX Runtime writes to the raw descriptor are silenced.
    """
    devnull = os.open(os.devnull, os.O_WRONLY)
    stderr_fd = os.dup(2)
    try:
        os.dup2(devnull, 2)
        with (
            contextlib.redirect_stdout(io.StringIO()),
            contextlib.redirect_stderr(io.StringIO()),
        ):
            yield
    finally:
        os.dup2(stderr_fd, 2)
        os.close(stderr_fd)
        os.close(devnull)
