import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_FILE_MODE = 0o644


def atomic_write(target_path: Union[str, Path], data: Union[str, bytes], mode: int = DEFAULT_FILE_MODE):
    """
    Writes data to a file atomically via a temporary file.

    Readers of ``target_path`` see either the previous content or the new
    content in full, never a truncated file. The final file carries ``mode``.
    """
    target = Path(target_path)
    temp_name: Optional[str] = None

    try:
        target.parent.mkdir(parents=True, exist_ok=True)

        # Use the same directory as the target to ensure same-device os.replace
        with tempfile.NamedTemporaryFile(
            dir=target.parent,
            delete=False,
            mode='w' if isinstance(data, str) else 'wb',
            prefix=f".{target.name}.",
            suffix=".tmp"
        ) as tf:
            temp_name = tf.name
            tf.write(data)
            tf.flush()
            os.fsync(tf.fileno())

        os.chmod(temp_name, mode)
        os.replace(temp_name, target)
    except OSError as e:
        logger.error(f"Failed to perform atomic write to {target}: {e}")
        if temp_name and os.path.exists(temp_name):
            os.unlink(temp_name)
        raise
