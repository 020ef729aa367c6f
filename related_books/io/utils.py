from __future__ import annotations

import logging
import os
import tempfile

logger = logging.getLogger(__name__)


def _atomic_write(write_fn, out_path: str, *, newline) -> None:
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    d = os.path.dirname(out_path) or "."
    with tempfile.NamedTemporaryFile("w", delete=False, dir=d, newline=newline, encoding="utf-8") as tf:
        tmp_path = tf.name
    try:
        write_fn(tmp_path)
        os.replace(tmp_path, out_path)
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError as e:
                logger.debug("temp cleanup failed | path=%s | err=%r", tmp_path, e)


def atomic_write_csv(write_fn, out_path: str) -> None:
    _atomic_write(write_fn, out_path, newline="")


def atomic_write_text(write_fn, out_path: str) -> None:
    _atomic_write(write_fn, out_path, newline=None)
