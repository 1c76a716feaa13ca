# sepopt/profiling.py
from __future__ import annotations
import logging, multiprocessing, os, time
from contextlib import contextmanager

try:
    import psutil
except Exception:
    psutil = None
try:
    from threadpoolctl import threadpool_info
except Exception:
    threadpool_info = None

logger = logging.getLogger(__name__)

_THREAD_ENV_KEYS = ["OMP_NUM_THREADS", "OPENBLAS_NUM_THREADS", "MKL_NUM_THREADS",
                    "BLIS_NUM_THREADS", "NUMEXPR_NUM_THREADS"]


def bytes_h(n):
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if n < 1024.0:
            return f"{n:,.1f} {unit}"
        n /= 1024.0
    return f"{n:.1f} PB"


def threadpool_summary():
    rows = []
    if threadpool_info is not None:
        for info in threadpool_info():
            rows.append({
                "api": info.get("internal_api"),
                "prefix": info.get("prefix"),
                "n_threads": info.get("num_threads"),
                "lib": os.path.basename(info.get("filepath", ""))})
    return rows


def thread_env():
    env = {k: os.environ.get(k) for k in _THREAD_ENV_KEYS if os.environ.get(k) is not None}
    return ", ".join(f"{k}={v}" for k, v in env.items()) or "(unset)"


def log_run_info(n, m):
    """Log cores, BLAS thread pools and process memory before a run."""
    logger.info("=== ADMM run info === n=%d m=%d", n, m)
    logger.info("Host cores available : %d", os.cpu_count() or multiprocessing.cpu_count())
    tp = threadpool_summary()
    if tp:
        for row in tp:
            logger.info("Threadpool         : %s (%s) n_threads=%s lib=%s",
                        row["api"], row["prefix"], row["n_threads"], row["lib"])
    else:
        logger.info("Threadpool         : [threadpoolctl not available]")
    logger.info("Env threads        : %s", thread_env())
    if psutil is not None:
        proc = psutil.Process(os.getpid())
        logger.info("Process mem (start): %s, threads=%d",
                    bytes_h(proc.memory_info().rss), proc.num_threads())


def log_run_summary(iters, timing):
    logger.info("=== ADMM summary === iters=%d total=%.3fs factor=%.3fs kkt=%.3fs prox=%.3fs dual=%.3fs",
                iters, timing.get("total", 0.0), timing.get("factor", 0.0),
                timing.get("kkt", 0.0), timing.get("prox", 0.0), timing.get("dual", 0.0))
    if psutil is not None:
        proc = psutil.Process(os.getpid())
        logger.info("final mem=%s  threads=%d", bytes_h(proc.memory_info().rss), proc.num_threads())


@contextmanager
def timed(timing, key):
    """Add the wall-clock time of the block to ``timing[key]``."""
    t0 = time.perf_counter()
    try:
        yield
    finally:
        timing[key] = timing.get(key, 0.0) + time.perf_counter() - t0
